# propfee/stats.py
"""看板统计：汇总指标、部门汇总、人员排行、部门-人员架构"""
from typing import List, Dict, Any, Optional
import pandas as pd

NO_PERFORMER = "无"


def _staff_sort_key(member: Dict[str, Any]):
    # 金额降序，金额相同按ID升序
    return (-member["collectedAmount"], member["id"])


def top_performer(staff: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not staff:
        return None
    return min(staff, key=_staff_sort_key)


def completion_rate(total_amount: float, total_target: float) -> float:
    """完成率（百分比），目标为0时记为0"""
    if not total_target:
        return 0.0
    return total_amount / total_target * 100


def summarize_staff(staff: List[Dict[str, Any]], department_count: int = 0) -> Dict[str, Any]:
    total_amount = sum(s["collectedAmount"] for s in staff)
    total_target = sum(s["target"] for s in staff)
    best = top_performer(staff)
    return {
        "totalAmount": total_amount,
        "totalTarget": total_target,
        "completionRate": completion_rate(total_amount, total_target),
        "topPerformer": best["name"] if best else NO_PERFORMER,
        "staffCount": len(staff),
        "departmentCount": department_count
    }


def _staff_frame(staff: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(
        [(s["deptId"], s["collectedAmount"], s["target"]) for s in staff],
        columns=["deptId", "collectedAmount", "target"]
    )


def department_rollup(departments: List[Dict[str, Any]], staff: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """按部门汇总收缴金额（部门已删除的人员不计入任何部门）"""
    df = _staff_frame(staff)
    grouped = df.dropna(subset=["deptId"]).groupby("deptId").agg(
        amount=("collectedAmount", "sum"),
        target=("target", "sum"),
        staffCount=("collectedAmount", "size")
    )
    grand_total = float(grouped["amount"].sum()) if not grouped.empty else 0.0

    result = []
    for dept in departments:
        if dept["id"] in grouped.index:
            row = grouped.loc[dept["id"]]
            amount = float(row["amount"])
            staff_target = float(row["target"])
            staff_count = int(row["staffCount"])
        else:
            amount, staff_target, staff_count = 0.0, 0.0, 0

        target = dept.get("targetAmount")
        if target is None:
            target = staff_target

        result.append({
            "id": dept["id"],
            "name": dept["name"],
            "color": dept["color"],
            "amount": amount,
            "target": target,
            "staffCount": staff_count,
            "completionRate": completion_rate(amount, target),
            "share": amount / grand_total * 100 if grand_total else 0.0
        })
    return result


def staff_ranking(departments: List[Dict[str, Any]], staff: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    dept_names = {d["id"]: d["name"] for d in departments}
    return [
        {
            "id": s["id"],
            "name": s["name"],
            "amount": s["collectedAmount"],
            "target": s["target"],
            "deptId": s["deptId"],
            "deptName": dept_names.get(s["deptId"])
        }
        for s in sorted(staff, key=_staff_sort_key)
    ]


def member_progress(member: Dict[str, Any]) -> float:
    if not member["target"]:
        return 0.0
    return min(member["collectedAmount"] / member["target"] * 100, 100.0)


def department_hierarchy(departments: List[Dict[str, Any]], staff: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """部门-人员 实时架构"""
    result = []
    for dept in departments:
        members = [s for s in staff if s["deptId"] == dept["id"]]
        result.append({
            "id": dept["id"],
            "name": dept["name"],
            "color": dept["color"],
            "total": sum(m["collectedAmount"] for m in members),
            "staff": [
                {**m, "progress": member_progress(m)}
                for m in members
            ]
        })
    return result
