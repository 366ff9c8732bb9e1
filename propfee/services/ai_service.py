from decimal import Decimal
from typing import List, Dict, Any
import logging
import openai
from openai import OpenAI

from ..config import settings
from ..stats import top_performer, NO_PERFORMER

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "AI 功能未启用：请配置 AI_API_KEY。"
QUOTA_MESSAGE = "AI 建议暂时不可用：已达到 API 额度上限。请稍后再试。"
FAILURE_MESSAGE = "暂时无法生成AI建议：{detail}"
EMPTY_MESSAGE = "分析暂时不可用"

PROMPT_TEMPLATE = """作为物业财务专家，请分析以下今日收费数据并给出3条简短的运营建议（中文）：
数据概览：{overview}
表现最好的人员：{top}

请重点关注：
1. 部门间的收费差异。
2. 完成率较低的潜在风险。
3. 激励措施建议。

请直接给出建议列表，不要有多余的客套话。"""


def format_amount(value: float) -> str:
    """12500.0 -> 12500, 99.5 -> 99.5"""
    return format(Decimal(str(value)).normalize(), 'f')


def build_digest(departments: List[Dict[str, Any]], staff: List[Dict[str, Any]]) -> Dict[str, str]:
    overview = ", ".join(
        f"{d['name']}: 总额 {format_amount(sum(s['collectedAmount'] for s in staff if s['deptId'] == d['id']))}元"
        for d in departments
    )
    best = top_performer(staff)
    top = f"{best['name']} ({format_amount(best['collectedAmount'])}元)" if best else NO_PERFORMER
    return {"overview": overview, "top": top}


def build_prompt(departments: List[Dict[str, Any]], staff: List[Dict[str, Any]]) -> str:
    return PROMPT_TEMPLATE.format(**build_digest(departments, staff))


def _is_rate_limited(error: Exception) -> bool:
    if isinstance(error, openai.RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    return "429" in str(error)


class AiService:
    def __init__(self, client=None, api_key: str = None, model_name: str = None):
        self.base_url = settings.AI_BASE_URL
        self.api_key = settings.AI_API_KEY if api_key is None else api_key
        self.model_name = model_name or settings.AI_MODEL_NAME
        self.client = client

        if self.client is None and self.api_key:
            try:
                self.client = OpenAI(
                    base_url=self.base_url,
                    api_key=self.api_key,
                    timeout=settings.AI_TIMEOUT_SECONDS,
                    max_retries=0
                )
            except Exception as e:
                logger.error(f"Failed to initialize OpenAI client: {e}")
                self.client = None

    def summarize(self, departments: List[Dict[str, Any]], staff: List[Dict[str, Any]],
                  records: List[Dict[str, Any]]) -> str:
        """根据当前汇总数据生成运营建议，任何失败都降级为提示文本"""
        if not self.api_key:
            logger.info("AI 未配置 API Key，跳过分析")
            return DISABLED_MESSAGE
        if not self.client:
            return FAILURE_MESSAGE.format(detail="AI 客户端初始化失败")

        prompt = build_prompt(departments, staff)
        logger.info(f"======== AI Insight Input ========\n{prompt}\n记录数: {len(records)}\n==================================")

        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": "user", "content": prompt}],
                stream=False
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"AI Insight Error: {e}")
            if _is_rate_limited(e):
                return QUOTA_MESSAGE
            return FAILURE_MESSAGE.format(detail=str(e))

        logger.info(f"\n======== AI Insight Output ========\n{content}\n===================================")
        return content or EMPTY_MESSAGE
