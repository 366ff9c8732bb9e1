from pydantic import BaseModel, Field
from typing import List, Optional, Any, Literal


class DepartmentItem(BaseModel):
    """部门"""
    id: str = Field(..., description="部门ID")
    name: str = Field(..., description="部门名称")
    color: str = Field(..., description="图表显示颜色")
    targetAmount: Optional[float] = Field(None, description="部门目标金额")


class StaffItem(BaseModel):
    """收费人员"""
    id: str = Field(..., description="人员ID")
    name: str = Field(..., description="姓名")
    deptId: Optional[str] = Field(None, description="所属部门ID，部门删除后为空")
    collectedAmount: float = Field(..., description="累计收缴金额")
    target: float = Field(..., description="目标金额")


class FeeRecordItem(BaseModel):
    """收费记录"""
    id: str = Field(..., description="记录ID")
    staffId: str = Field(..., description="收费人员ID")
    amount: float = Field(..., description="收缴金额")
    timestamp: int = Field(..., description="录入时间（毫秒时间戳）")


class UserProfile(BaseModel):
    id: str = Field(..., description="用户ID")
    username: str = Field(..., description="用户名")
    displayName: str = Field(..., description="显示名称")
    role: Literal["admin", "staff"] = Field(..., description="角色")


class DashboardStats(BaseModel):
    """看板汇总统计"""
    totalAmount: float = Field(..., description="累计收缴总额")
    totalTarget: float = Field(..., description="目标总额")
    completionRate: float = Field(..., description="总体完成率（百分比）")
    topPerformer: str = Field(..., description="最佳收费员")
    staffCount: int = Field(..., description="收费人员数")
    departmentCount: int = Field(0, description="部门数")


# 请求模型
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="用户名")
    password: str = Field(..., min_length=1, description="密码")


class FeeEntryRequest(BaseModel):
    """收费录入请求"""
    staffId: str = Field(..., min_length=1, description="收费人员ID")
    amount: float = Field(..., gt=0, description="收缴金额，必须大于0")


class DepartmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="部门名称")
    color: str = Field("#6366f1", min_length=1, max_length=32, description="图表显示颜色")
    targetAmount: Optional[float] = Field(None, ge=0, description="部门目标金额（可选）")


class DepartmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="部门名称")
    color: Optional[str] = Field(None, min_length=1, max_length=32, description="图表显示颜色")
    targetAmount: Optional[float] = Field(None, ge=0, description="部门目标金额")


class StaffCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="姓名")
    deptId: Optional[str] = Field(None, description="所属部门ID")
    target: float = Field(0, ge=0, description="目标金额")


class StaffUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="姓名")
    deptId: Optional[str] = Field(None, description="所属部门ID，传 null 表示移出部门")
    target: Optional[float] = Field(None, ge=0, description="目标金额")
    collectedAmount: Optional[float] = Field(None, ge=0, description="累计收缴金额（人工修正）")


# 响应模型
class ApiResponse(BaseModel):
    """通用响应模型"""
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: Optional[Any] = Field(None, description="结果数据")
    request_id: str = Field(..., description="请求ID")


class LoginResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: Optional[UserProfile] = Field(None, description="登录用户信息")
    token: Optional[str] = Field(None, description="会话令牌")
    request_id: str = Field(..., description="请求ID")


class DashboardData(BaseModel):
    departments: List[DepartmentItem] = Field(default_factory=list, description="部门列表")
    staff: List[StaffItem] = Field(default_factory=list, description="人员列表")
    records: List[FeeRecordItem] = Field(default_factory=list, description="收费记录（最新在前）")
    stats: DashboardStats = Field(..., description="汇总统计")
    insight: str = Field(..., description="AI 运营建议")
    isLoading: bool = Field(..., description="是否正在加载")
    isAnalyzing: bool = Field(..., description="是否正在生成AI建议")
    loadError: Optional[str] = Field(None, description="加载失败原因")


class DashboardResponse(BaseModel):
    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="处理信息")
    data: DashboardData = Field(..., description="看板数据")
    request_id: str = Field(..., description="请求ID")
