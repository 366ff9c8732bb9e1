import logging
import time
from typing import List, Dict, Any, Callable, Optional

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..stats import summarize_staff
from .ai_service import AiService
from .data_service import FeeDataService, RecordNotFoundError

logger = logging.getLogger(__name__)

INITIAL_INSIGHT = "正在分析收缴趋势..."


class DashboardActionError(Exception):
    """操作失败，message 为展示给用户的提示"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DashboardState:
    """
    看板状态容器

    持有部门、人员、收费记录的内存副本，每次读取时重新计算汇总统计。
    所有写操作先调用数据访问层，成功后再同步修改本地数据；
    失败时本地数据保持不变，并抛出 DashboardActionError。
    """

    def __init__(self, session_factory: Callable[[], Session], ai_service: AiService = None,
                 reconcile_interval: int = None, clock=time.monotonic):
        self.session_factory = session_factory
        self.ai_service = ai_service or AiService()
        self.reconcile_interval = settings.RECONCILE_INTERVAL_SECONDS if reconcile_interval is None else reconcile_interval
        self.clock = clock

        self.departments: List[Dict[str, Any]] = []
        self.staff: List[Dict[str, Any]] = []
        self.records: List[Dict[str, Any]] = []
        self.insight = INITIAL_INSIGHT
        self.is_loading = True
        self.is_analyzing = False
        self.load_error: Optional[str] = None
        # 加载成功后待生成 AI 建议，由调用方安排在后台执行
        self.insight_pending = False
        self.last_loaded_at: Optional[float] = None

    def _call(self, action: str, func: Callable[[FeeDataService], Any]):
        db = self.session_factory()
        try:
            return func(FeeDataService(db))
        except RecordNotFoundError as e:
            logger.error(f"[{action}] 失败: {e}")
            raise DashboardActionError(str(e), status_code=404)
        except ValueError as e:
            logger.error(f"[{action}] 失败: {e}")
            raise DashboardActionError(str(e), status_code=400)
        except Exception as e:
            logger.error(f"[{action}] 失败: {e}", exc_info=True)
            raise DashboardActionError(f"{action}失败，请检查网络或配置")
        finally:
            db.close()

    # 加载与对账
    def load(self) -> bool:
        """全量加载；失败时保留空数据并记录 load_error"""
        self.is_loading = True
        db = self.session_factory()
        try:
            data = FeeDataService(db).fetch_all()
        except Exception as e:
            logger.error(f"Failed to load data: {e}", exc_info=True)
            self.load_error = f"数据加载失败：{e}"
            return False
        finally:
            db.close()
            self.is_loading = False

        self.departments = data["departments"]
        self.staff = data["staff"]
        self.records = data["records"]
        self.load_error = None
        self.last_loaded_at = self.clock()
        logger.info(f"数据加载完成: 部门 {len(self.departments)} 个, 人员 {len(self.staff)} 名, 记录 {len(self.records)} 条")

        self.insight_pending = bool(self.staff)
        return True

    @property
    def loaded(self) -> bool:
        return self.last_loaded_at is not None

    def ensure_loaded(self) -> bool:
        if self.loaded:
            return True
        return self.load()

    def refresh(self) -> bool:
        """从数据库重新拉取，修正本地可能与数据库不一致的数据"""
        return self.load()

    def reconcile_if_stale(self) -> bool:
        if not self.loaded:
            return self.load()
        if self.reconcile_interval and self.clock() - self.last_loaded_at >= self.reconcile_interval:
            logger.info("本地数据已过期，重新对账")
            return self.load()
        return True

    # 派生统计
    @property
    def stats(self) -> Dict[str, Any]:
        return summarize_staff(self.staff, department_count=len(self.departments))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "departments": self.departments,
            "staff": self.staff,
            "records": self.records,
            "stats": self.stats,
            "insight": self.insight,
            "isLoading": self.is_loading,
            "isAnalyzing": self.is_analyzing,
            "loadError": self.load_error
        }

    # AI 建议
    async def refresh_insight(self) -> str:
        """在线程池中调用 AI 服务，调用期间 is_analyzing 为 True，事件循环可继续处理其他请求"""
        if self.is_analyzing or not self.staff:
            return self.insight

        self.is_analyzing = True
        self.insight_pending = False
        try:
            result = await run_in_threadpool(
                self.ai_service.summarize, list(self.departments), list(self.staff), list(self.records)
            )
            self.insight = result or "分析暂时不可用"
        finally:
            self.is_analyzing = False
        return self.insight

    async def refresh_pending_insight(self) -> str:
        """加载完成后待生成的建议，由后台任务调用"""
        if not self.insight_pending:
            return self.insight
        return await self.refresh_insight()

    # 收费录入
    def post_fee(self, staff_id: str, amount: float) -> Dict[str, Any]:
        result = self._call("收费录入", lambda service: service.post_fee_entry(staff_id, amount))
        record = result["record"]

        # 使用数据库返回的累计值，避免并发录入时本地累加出现偏差
        self.staff = [
            {**s, "collectedAmount": result["collectedAmount"]} if s["id"] == staff_id else s
            for s in self.staff
        ]
        self.records = [record] + self.records
        return record

    # 部门
    def register_department(self, name: str, color: str, target_amount: float = None) -> Dict[str, Any]:
        dept = self._call("注册部门", lambda service: service.register_department(name, color, target_amount))
        self.departments = self.departments + [dept]
        return dept

    def update_department(self, dept_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        dept = self._call("更新部门", lambda service: service.update_department(dept_id, partial))
        self.departments = [dept if d["id"] == dept_id else d for d in self.departments]
        return dept

    def delete_department(self, dept_id: str) -> List[str]:
        orphan_ids = self._call("删除部门", lambda service: service.delete_department(dept_id))
        self.departments = [d for d in self.departments if d["id"] != dept_id]
        self.staff = [
            {**s, "deptId": None} if s["deptId"] == dept_id else s
            for s in self.staff
        ]
        return orphan_ids

    # 人员
    def register_staff(self, name: str, dept_id: Optional[str], target: float) -> Dict[str, Any]:
        member = self._call("注册人员", lambda service: service.register_staff(name, dept_id, target))
        self.staff = self.staff + [member]
        return member

    def update_staff(self, staff_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        member = self._call("更新人员", lambda service: service.update_staff(staff_id, partial))
        self.staff = [member if s["id"] == staff_id else s for s in self.staff]
        return member

    def delete_staff(self, staff_id: str) -> int:
        removed = self._call("删除人员", lambda service: service.delete_staff(staff_id))
        self.staff = [s for s in self.staff if s["id"] != staff_id]
        self.records = [r for r in self.records if r["staffId"] != staff_id]
        return removed
