import logging
import time as _time
import uuid
from typing import Optional, Dict, Any, Callable

from fastapi import FastAPI, Depends, HTTPException, Request, Header, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .config import settings
from .database import SessionLocal, get_db
from .models import (
    ApiResponse, LoginRequest, LoginResponse, DashboardResponse,
    FeeEntryRequest, DepartmentCreateRequest, DepartmentUpdateRequest,
    StaffCreateRequest, StaffUpdateRequest
)
from .services import (
    AuthService, AuthenticationError, LoginThrottle, LoginThrottledError,
    SessionManager, MemorySessionStorage, JsonFileSessionStorage,
    AiService, DashboardState, DashboardActionError
)
from .stats import department_rollup, staff_ranking, department_hierarchy

# 配置日志
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# 创建FastAPI应用
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def init_state(target: FastAPI, session_factory=SessionLocal, ai_service: AiService = None,
               session_storage=None, login_throttle: LoginThrottle = None) -> DashboardState:
    """初始化应用级状态：看板状态容器、会话管理、登录限流"""
    if session_storage is None:
        session_storage = JsonFileSessionStorage(settings.SESSION_FILE) if settings.SESSION_FILE else MemorySessionStorage()

    target.state.dashboard = DashboardState(session_factory, ai_service=ai_service)
    target.state.sessions = SessionManager(session_storage)
    target.state.login_throttle = login_throttle or LoginThrottle()
    return target.state.dashboard


init_state(app)


# 依赖项
def get_dashboard(request: Request) -> DashboardState:
    return request.app.state.dashboard


def schedule_insight(dashboard: DashboardState, background_tasks: BackgroundTasks) -> None:
    """数据加载后的 AI 建议放到响应返回之后生成"""
    if dashboard.insight_pending:
        background_tasks.add_task(dashboard.refresh_pending_insight)


async def get_loaded_dashboard(
        background_tasks: BackgroundTasks,
        dashboard: DashboardState = Depends(get_dashboard)
) -> DashboardState:
    dashboard.ensure_loaded()
    schedule_insight(dashboard, background_tasks)
    return dashboard


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_auth_service(request: Request, db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db, throttle=request.app.state.login_throttle)


def get_token(
        authorization: Optional[str] = Header(None),
        x_session_token: Optional[str] = Header(None)
) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return x_session_token


def require_user(
        token: Optional[str] = Depends(get_token),
        sessions: SessionManager = Depends(get_sessions)
) -> Dict[str, Any]:
    """会话存在即放行，不区分角色"""
    user = sessions.get(token)
    if not user:
        raise HTTPException(status_code=401, detail="未登录或会话已失效")
    return user


def _run_action(label: str, func: Callable[[], Any], message: str) -> Dict[str, Any]:
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[{label}] 开始 | 请求ID: {request_id}")
    try:
        data = func()
    except DashboardActionError as e:
        elapsed = round(_time.time() - start_time, 2)
        logger.error(f"[{label}] 失败 | 请求ID: {request_id} | 耗时: {elapsed}秒 | 错误: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[{label}] 完成 | 请求ID: {request_id} | 耗时: {elapsed}秒")
    return {
        "success": True,
        "message": message,
        "data": data,
        "request_id": request_id
    }


# 登录
@app.post("/auth/login", response_model=LoginResponse, tags=["登录"])
async def login(
        request: LoginRequest,
        background_tasks: BackgroundTasks,
        auth_service: AuthService = Depends(get_auth_service),
        sessions: SessionManager = Depends(get_sessions),
        dashboard: DashboardState = Depends(get_dashboard)
):
    request_id = str(uuid.uuid4())
    logger.info(f"[登录] 开始 | 请求ID: {request_id} | 用户: {request.username}")
    try:
        profile = auth_service.login(request.username, request.password)
    except LoginThrottledError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except Exception as e:
        logger.error(f"[登录] 失败 | 请求ID: {request_id} | 错误: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="登录过程中发生错误，请稍后重试")

    token = sessions.open(profile)
    # 会话开始时加载看板数据，AI 建议在响应返回后生成
    dashboard.ensure_loaded()
    schedule_insight(dashboard, background_tasks)
    return {
        "success": True,
        "message": "登录成功",
        "data": profile,
        "token": token,
        "request_id": request_id
    }


@app.post("/auth/logout", response_model=ApiResponse, tags=["登录"])
async def logout(
        token: Optional[str] = Depends(get_token),
        sessions: SessionManager = Depends(get_sessions)
):
    sessions.close(token)
    return {"success": True, "message": "已退出登录", "data": None, "request_id": str(uuid.uuid4())}


@app.get("/auth/me", response_model=ApiResponse, tags=["登录"])
async def current_user(user: Dict[str, Any] = Depends(require_user)):
    return {"success": True, "message": "已登录", "data": user, "request_id": str(uuid.uuid4())}


# 看板
@app.get("/dashboard", response_model=DashboardResponse, tags=["看板"])
async def get_dashboard_data(
        background_tasks: BackgroundTasks,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_dashboard)
):
    dashboard.reconcile_if_stale()
    schedule_insight(dashboard, background_tasks)
    return {
        "success": dashboard.load_error is None,
        "message": dashboard.load_error or "获取成功",
        "data": dashboard.snapshot(),
        "request_id": str(uuid.uuid4())
    }


@app.post("/dashboard/refresh", response_model=DashboardResponse, tags=["看板"])
async def refresh_dashboard(
        background_tasks: BackgroundTasks,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_dashboard)
):
    request_id = str(uuid.uuid4())
    logger.info(f"[数据对账] 开始 | 请求ID: {request_id} | 用户: {user['username']}")
    ok = dashboard.refresh()
    schedule_insight(dashboard, background_tasks)
    return {
        "success": ok,
        "message": "刷新成功" if ok else dashboard.load_error,
        "data": dashboard.snapshot(),
        "request_id": request_id
    }


@app.get("/dashboard/stats", response_model=ApiResponse, tags=["看板"])
async def get_stats(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return {"success": True, "message": "获取成功", "data": dashboard.stats, "request_id": str(uuid.uuid4())}


@app.get("/dashboard/hierarchy", response_model=ApiResponse, tags=["看板"])
async def get_hierarchy(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    data = department_hierarchy(dashboard.departments, dashboard.staff)
    return {"success": True, "message": "获取成功", "data": data, "request_id": str(uuid.uuid4())}


# 图表数据
@app.get("/charts/departments", response_model=ApiResponse, tags=["图表"])
async def get_department_chart(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    data = department_rollup(dashboard.departments, dashboard.staff)
    return {"success": True, "message": "获取成功", "data": data, "request_id": str(uuid.uuid4())}


@app.get("/charts/staff", response_model=ApiResponse, tags=["图表"])
async def get_staff_chart(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    data = staff_ranking(dashboard.departments, dashboard.staff)
    return {"success": True, "message": "获取成功", "data": data, "request_id": str(uuid.uuid4())}


# 收费录入
@app.post("/fees", response_model=ApiResponse, tags=["收费录入"])
async def post_fee(
        request: FeeEntryRequest,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return _run_action(
        "收费录入",
        lambda: dashboard.post_fee(request.staffId, request.amount),
        "录入成功"
    )


# 部门管理
@app.post("/departments", response_model=ApiResponse, tags=["部门管理"])
async def register_department(
        request: DepartmentCreateRequest,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return _run_action(
        "注册部门",
        lambda: dashboard.register_department(request.name, request.color, request.targetAmount),
        "部门已创建"
    )


@app.patch("/departments/{dept_id}", response_model=ApiResponse, tags=["部门管理"])
async def update_department(
        dept_id: str,
        request: DepartmentUpdateRequest,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    partial = request.model_dump(exclude_unset=True)
    return _run_action("更新部门", lambda: dashboard.update_department(dept_id, partial), "部门已更新")


@app.delete("/departments/{dept_id}", response_model=ApiResponse, tags=["部门管理"])
async def delete_department(
        dept_id: str,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return _run_action(
        "删除部门",
        lambda: {"orphanedStaffIds": dashboard.delete_department(dept_id)},
        "部门已删除"
    )


# 人员管理
@app.post("/staff", response_model=ApiResponse, tags=["人员管理"])
async def register_staff(
        request: StaffCreateRequest,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return _run_action(
        "注册人员",
        lambda: dashboard.register_staff(request.name, request.deptId, request.target),
        "人员已创建"
    )


@app.patch("/staff/{staff_id}", response_model=ApiResponse, tags=["人员管理"])
async def update_staff(
        staff_id: str,
        request: StaffUpdateRequest,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    partial = request.model_dump(exclude_unset=True)
    return _run_action("更新人员", lambda: dashboard.update_staff(staff_id, partial), "人员已更新")


@app.delete("/staff/{staff_id}", response_model=ApiResponse, tags=["人员管理"])
async def delete_staff(
        staff_id: str,
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return _run_action(
        "删除人员",
        lambda: {"removedRecords": dashboard.delete_staff(staff_id)},
        "人员已删除"
    )


# AI 运营建议
@app.get("/insight", response_model=ApiResponse, tags=["AI建议"])
async def get_insight(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    return {
        "success": True,
        "message": "分析中" if dashboard.is_analyzing else "获取成功",
        "data": {"insight": dashboard.insight, "isAnalyzing": dashboard.is_analyzing},
        "request_id": str(uuid.uuid4())
    }


@app.post("/insight/refresh", response_model=ApiResponse, tags=["AI建议"])
async def refresh_insight(
        user: Dict[str, Any] = Depends(require_user),
        dashboard: DashboardState = Depends(get_loaded_dashboard)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[AI建议] 开始 | 请求ID: {request_id}")
    insight = await dashboard.refresh_insight()
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[AI建议] 完成 | 请求ID: {request_id} | 耗时: {elapsed}秒")
    return {
        "success": True,
        "message": "分析完成",
        "data": {"insight": insight, "isAnalyzing": dashboard.is_analyzing},
        "request_id": request_id
    }
