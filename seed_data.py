"""
初始化数据脚本
创建数据库表，写入演示部门、收费人员以及管理员账号

使用方法：
    python seed_data.py --admin-password <密码>
    python seed_data.py --reset --admin-password <密码>   # 删除并重建所有表
"""
import argparse
import sys
from decimal import Decimal
from pathlib import Path

# Add the project root to sys.path to import propfee modules
sys.path.append(str(Path(__file__).parent))

from propfee.database import engine, Base, SessionLocal
from propfee.orm_models import Department, Staff, FeeRecord, User
from propfee.services.auth_service import AuthService

INITIAL_DEPARTMENTS = [
    {"id": "dept-1", "name": "住宅一部", "color": "#6366f1"},
    {"id": "dept-2", "name": "住宅二部", "color": "#10b981"},
    {"id": "dept-3", "name": "商业运营部", "color": "#f59e0b"},
    {"id": "dept-4", "name": "特约服务部", "color": "#ec4899"},
]

INITIAL_STAFF = [
    {"id": "s1", "name": "张伟", "dept_id": "dept-1", "collected": 12500, "target": 20000},
    {"id": "s2", "name": "李强", "dept_id": "dept-1", "collected": 8400, "target": 15000},
    {"id": "s3", "name": "王丽", "dept_id": "dept-1", "collected": 15600, "target": 22000},
    {"id": "s4", "name": "赵敏", "dept_id": "dept-2", "collected": 21000, "target": 25000},
    {"id": "s5", "name": "孙晨", "dept_id": "dept-2", "collected": 18200, "target": 20000},
    {"id": "s6", "name": "周杰", "dept_id": "dept-3", "collected": 45000, "target": 50000},
    {"id": "s7", "name": "吴磊", "dept_id": "dept-3", "collected": 32000, "target": 40000},
    {"id": "s8", "name": "郑华", "dept_id": "dept-4", "collected": 12000, "target": 15000},
    {"id": "s9", "name": "冯媛", "dept_id": "dept-4", "collected": 9800, "target": 12000},
]


def seed(reset=False, admin_username="admin", admin_password=None):
    print("=" * 60)
    print("物业收费系统初始化脚本")
    print("=" * 60)

    # 1. 创建/重建表
    if reset:
        print("\n[1/3] 删除并重建数据库表...")
        FeeRecord.__table__.drop(engine, checkfirst=True)
        Staff.__table__.drop(engine, checkfirst=True)
        Department.__table__.drop(engine, checkfirst=True)
        User.__table__.drop(engine, checkfirst=True)
    else:
        print("\n[1/3] 创建数据库表...")

    Base.metadata.create_all(bind=engine)
    print("      ✓ 数据库表已创建")

    db = SessionLocal()
    try:
        # 2. 部门与人员
        print("\n[2/3] 写入演示部门与人员...")
        if db.query(Department).count() > 0:
            print("      - 已存在部门数据，跳过")
        else:
            for dept in INITIAL_DEPARTMENTS:
                db.add(Department(**dept))
            for member in INITIAL_STAFF:
                db.add(Staff(
                    id=member["id"],
                    name=member["name"],
                    dept_id=member["dept_id"],
                    collected_amount=Decimal(member["collected"]),
                    target_amount=Decimal(member["target"])
                ))
            db.commit()
            print(f"      ✓ 部门 {len(INITIAL_DEPARTMENTS)} 个，人员 {len(INITIAL_STAFF)} 名")

        # 3. 管理员账号
        print("\n[3/3] 创建管理员账号...")
        if not admin_password:
            print("      - 未提供 --admin-password，跳过")
        elif db.query(User).filter(User.username == admin_username).first():
            print(f"      - 用户 {admin_username} 已存在，跳过")
        else:
            AuthService(db).register_user(admin_username, admin_password, "系统管理员", role="admin")
            print(f"      ✓ 管理员 {admin_username} 已创建")
    except Exception as e:
        db.rollback()
        print(f"\n✗ 初始化失败: {e}")
        raise
    finally:
        db.close()

    print("\n" + "=" * 60)
    print("初始化完成")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化物业收费系统数据")
    parser.add_argument("--reset", action="store_true", help="删除并重建所有表")
    parser.add_argument("--admin-username", type=str, default="admin", help="管理员用户名")
    parser.add_argument("--admin-password", type=str, default=None, help="管理员密码")
    args = parser.parse_args()

    seed(reset=args.reset, admin_username=args.admin_username, admin_password=args.admin_password)
