import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Dict, Any, Optional
from sqlalchemy.orm import Session
from ..orm_models import Department, Staff, FeeRecord

logger = logging.getLogger(__name__)


class RecordNotFoundError(LookupError):
    """要操作的部门/人员不存在"""


# 前端字段 -> 数据库字段
DEPARTMENT_FIELDS = {"name": "name", "color": "color", "targetAmount": "target_amount"}
STAFF_FIELDS = {"name": "name", "deptId": "dept_id", "target": "target_amount", "collectedAmount": "collected_amount"}


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def to_float(value) -> float:
    """数据库金额（Decimal/字符串/None）统一转换为 float"""
    if value is None:
        return 0.0
    return float(value)


def to_millis(value: datetime) -> int:
    # 数据库存储的是 UTC 无时区时间
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def department_to_dict(dept: Department) -> Dict[str, Any]:
    return {
        "id": dept.id,
        "name": dept.name,
        "color": dept.color,
        "targetAmount": float(dept.target_amount) if dept.target_amount is not None else None
    }


def staff_to_dict(member: Staff) -> Dict[str, Any]:
    return {
        "id": member.id,
        "name": member.name,
        "deptId": member.dept_id,
        "collectedAmount": to_float(member.collected_amount),
        "target": to_float(member.target_amount)
    }


def record_to_dict(record: FeeRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "staffId": record.staff_id,
        "amount": to_float(record.amount),
        "timestamp": to_millis(record.timestamp)
    }


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class FeeDataService:
    """收费数据访问层：负责数据库行与前端实体结构之间的转换"""

    def __init__(self, db: Session):
        self.db = db

    def fetch_all(self) -> Dict[str, List[Dict[str, Any]]]:
        """全量读取部门、人员、收费记录（记录按时间倒序）"""
        departments = self.db.query(Department).all()
        staff = self.db.query(Staff).all()
        records = self.db.query(FeeRecord).order_by(
            FeeRecord.timestamp.desc(), FeeRecord.seq.desc()
        ).all()

        return {
            "departments": [department_to_dict(d) for d in departments],
            "staff": [staff_to_dict(s) for s in staff],
            "records": [record_to_dict(r) for r in records]
        }

    def post_fee_entry(self, staff_id: str, amount: float) -> Dict[str, Any]:
        """
        录入一条收费记录并累加人员收缴金额

        插入记录与累加在同一事务内完成，累加使用
        collected_amount = collected_amount + amount 的原子更新。
        """
        if amount is None or amount <= 0:
            raise ValueError("收缴金额必须大于0")

        delta = _to_decimal(amount)
        try:
            record = FeeRecord(
                id=new_id("fee"),
                staff_id=staff_id,
                amount=delta,
                timestamp=datetime.now(timezone.utc).replace(tzinfo=None)
            )
            updated = self.db.query(Staff).filter(Staff.id == staff_id).update(
                {Staff.collected_amount: Staff.collected_amount + delta},
                synchronize_session=False
            )
            if not updated:
                raise RecordNotFoundError(f"收费人员不存在: {staff_id}")

            self.db.add(record)
            self.db.flush()
            # 提交前在同一事务内取结果，提交后不再回读
            result = {
                "record": record_to_dict(record),
                "collectedAmount": to_float(
                    self.db.query(Staff.collected_amount).filter(Staff.id == staff_id).scalar()
                )
            }
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"收费录入失败: staff_id={staff_id}, amount={amount}, 错误: {e}")
            raise

        logger.info(f"收费录入成功: staff_id={staff_id}, amount={amount}, 累计={result['collectedAmount']}")
        return result

    # 部门
    def register_department(self, name: str, color: str, target_amount: float = None) -> Dict[str, Any]:
        dept = Department(
            id=new_id("dept"),
            name=name,
            color=color,
            target_amount=_to_decimal(target_amount)
        )
        try:
            self.db.add(dept)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"注册部门失败: {name}, 错误: {e}")
            raise
        return department_to_dict(dept)

    def update_department(self, dept_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        dept = self.db.query(Department).filter(Department.id == dept_id).first()
        if not dept:
            raise RecordNotFoundError(f"部门不存在: {dept_id}")

        try:
            for key, value in partial.items():
                column = DEPARTMENT_FIELDS.get(key)
                if not column or (value is None and column != "target_amount"):
                    continue
                if column == "target_amount":
                    value = _to_decimal(value)
                setattr(dept, column, value)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"更新部门失败: {dept_id}, 错误: {e}")
            raise
        self.db.refresh(dept)
        return department_to_dict(dept)

    def delete_department(self, dept_id: str) -> List[str]:
        """删除部门，所属人员的部门置空（人员及其记录保留），返回被置空的人员ID"""
        dept = self.db.query(Department).filter(Department.id == dept_id).first()
        if not dept:
            raise RecordNotFoundError(f"部门不存在: {dept_id}")

        try:
            orphan_ids = [row.id for row in self.db.query(Staff.id).filter(Staff.dept_id == dept_id).all()]
            self.db.query(Staff).filter(Staff.dept_id == dept_id).update(
                {Staff.dept_id: None}, synchronize_session=False
            )
            self.db.delete(dept)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"删除部门失败: {dept_id}, 错误: {e}")
            raise

        logger.info(f"已删除部门 {dept_id}，置空人员 {len(orphan_ids)} 名")
        return orphan_ids

    # 人员
    def register_staff(self, name: str, dept_id: Optional[str], target: float) -> Dict[str, Any]:
        if dept_id and not self.db.query(Department.id).filter(Department.id == dept_id).first():
            raise RecordNotFoundError(f"部门不存在: {dept_id}")

        member = Staff(
            id=new_id("s"),
            name=name,
            dept_id=dept_id or None,
            target_amount=_to_decimal(target or 0),
            collected_amount=Decimal("0")
        )
        try:
            self.db.add(member)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"注册人员失败: {name}, 错误: {e}")
            raise
        return staff_to_dict(member)

    def update_staff(self, staff_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        member = self.db.query(Staff).filter(Staff.id == staff_id).first()
        if not member:
            raise RecordNotFoundError(f"收费人员不存在: {staff_id}")

        dept_id = partial.get("deptId")
        if dept_id and not self.db.query(Department.id).filter(Department.id == dept_id).first():
            raise RecordNotFoundError(f"部门不存在: {dept_id}")
        if partial.get("collectedAmount") is not None and partial["collectedAmount"] < 0:
            raise ValueError("累计收缴金额不能为负数")

        try:
            for key, value in partial.items():
                column = STAFF_FIELDS.get(key)
                if not column or (value is None and column != "dept_id"):
                    continue
                if column in ("target_amount", "collected_amount"):
                    value = _to_decimal(value)
                elif column == "dept_id":
                    value = value or None
                setattr(member, column, value)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"更新人员失败: {staff_id}, 错误: {e}")
            raise
        self.db.refresh(member)
        return staff_to_dict(member)

    def delete_staff(self, staff_id: str) -> int:
        """删除人员及其全部收费记录，返回删除的记录数"""
        member = self.db.query(Staff).filter(Staff.id == staff_id).first()
        if not member:
            raise RecordNotFoundError(f"收费人员不存在: {staff_id}")

        try:
            removed = self.db.query(FeeRecord).filter(FeeRecord.staff_id == staff_id).delete(
                synchronize_session=False
            )
            self.db.delete(member)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"删除人员失败: {staff_id}, 错误: {e}")
            raise

        logger.info(f"已删除人员 {staff_id}，同时删除收费记录 {removed} 条")
        return removed
