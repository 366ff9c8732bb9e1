import pytest
from datetime import datetime, timezone
from unittest.mock import patch
from sqlalchemy import text
from propfee.orm_models import FeeRecord, Staff
from propfee.services.data_service import FeeDataService, RecordNotFoundError


class TestFeeDataService:

    def test_fetch_all_maps_rows_to_entities(self, seeded):
        data = FeeDataService(seeded).fetch_all()

        assert {d["id"] for d in data["departments"]} == {"dept-a", "dept-b"}
        staff = {s["id"]: s for s in data["staff"]}
        assert staff["s-a"] == {
            "id": "s-a", "name": "A", "deptId": "dept-a", "collectedAmount": 100.0, "target": 200.0
        }
        assert isinstance(staff["s-b"]["collectedAmount"], float)
        assert data["records"] == []

    def test_post_fee_entry_increments_total(self, seeded):
        service = FeeDataService(seeded)
        result = service.post_fee_entry("s-a", 50)

        assert result["collectedAmount"] == 150.0
        assert result["record"]["staffId"] == "s-a"
        assert result["record"]["amount"] == 50.0
        assert result["record"]["id"].startswith("fee-")
        assert seeded.query(FeeRecord).count() == 1

    def test_records_listed_newest_first(self, seeded):
        service = FeeDataService(seeded)
        first = service.post_fee_entry("s-a", 10)["record"]
        second = service.post_fee_entry("s-b", 20)["record"]

        records = service.fetch_all()["records"]
        assert [r["id"] for r in records] == [second["id"], first["id"]]
        assert records[0]["timestamp"] >= records[1]["timestamp"]

    def test_same_timestamp_keeps_insertion_order(self, seeded):
        service = FeeDataService(seeded)
        fixed = datetime(2024, 5, 1, 8, 30, 0, 123456, tzinfo=timezone.utc)
        with patch("propfee.services.data_service.datetime") as mock_datetime:
            mock_datetime.now.return_value = fixed
            first = service.post_fee_entry("s-a", 10)["record"]
            second = service.post_fee_entry("s-b", 20)["record"]
            third = service.post_fee_entry("s-a", 30)["record"]

        assert first["timestamp"] == second["timestamp"] == third["timestamp"]
        records = service.fetch_all()["records"]
        assert [r["id"] for r in records] == [third["id"], second["id"], first["id"]]

    def test_post_fee_entry_result_survives_concurrent_delete(self, seeded):
        service = FeeDataService(seeded)
        real_commit = seeded.commit

        def commit_then_delete():
            real_commit()
            # 提交后人员被其他会话删除
            seeded.execute(text("DELETE FROM fees WHERE staff_id = 's-a'"))
            seeded.execute(text("DELETE FROM staff WHERE id = 's-a'"))
            real_commit()

        with patch.object(seeded, "commit", side_effect=commit_then_delete):
            result = service.post_fee_entry("s-a", 50)

        assert result["collectedAmount"] == 150.0
        assert result["record"]["staffId"] == "s-a"
        assert seeded.query(Staff).filter(Staff.id == "s-a").first() is None

    def test_post_fee_entry_unknown_staff_leaves_no_record(self, seeded):
        service = FeeDataService(seeded)
        with pytest.raises(RecordNotFoundError):
            service.post_fee_entry("missing", 50)
        assert seeded.query(FeeRecord).count() == 0

    @pytest.mark.parametrize("amount", [0, -5])
    def test_post_fee_entry_rejects_non_positive(self, seeded, amount):
        with pytest.raises(ValueError):
            FeeDataService(seeded).post_fee_entry("s-a", amount)

    def test_post_fee_entry_rolls_back_when_commit_fails(self, seeded):
        service = FeeDataService(seeded)
        with patch.object(seeded, "commit", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                service.post_fee_entry("s-a", 50)

        assert seeded.query(FeeRecord).count() == 0
        assert float(seeded.query(Staff).filter(Staff.id == "s-a").one().collected_amount) == 100.0

    def test_delete_department_orphans_staff_and_keeps_records(self, seeded):
        service = FeeDataService(seeded)
        service.post_fee_entry("s-a", 30)

        orphaned = service.delete_department("dept-a")

        assert orphaned == ["s-a"]
        data = service.fetch_all()
        staff = {s["id"]: s for s in data["staff"]}
        assert staff["s-a"]["deptId"] is None
        assert staff["s-b"]["deptId"] == "dept-b"
        assert len(data["records"]) == 1

    def test_delete_staff_cascades_records(self, seeded):
        service = FeeDataService(seeded)
        service.post_fee_entry("s-a", 30)
        service.post_fee_entry("s-a", 40)
        service.post_fee_entry("s-b", 50)

        removed = service.delete_staff("s-a")

        assert removed == 2
        data = service.fetch_all()
        assert [s["id"] for s in data["staff"]] == ["s-b"]
        assert [r["staffId"] for r in data["records"]] == ["s-b"]

    def test_register_and_update_department(self, seeded):
        service = FeeDataService(seeded)
        dept = service.register_department("商业运营部", "#f59e0b", 5000)

        assert dept["id"].startswith("dept-")
        assert dept["targetAmount"] == 5000.0

        updated = service.update_department(dept["id"], {"name": "商业一部", "targetAmount": None})
        assert updated["name"] == "商业一部"
        assert updated["color"] == "#f59e0b"
        assert updated["targetAmount"] is None

    def test_register_staff_starts_at_zero(self, seeded):
        member = FeeDataService(seeded).register_staff("C", "dept-b", 300)

        assert member["id"].startswith("s-")
        assert member["collectedAmount"] == 0.0
        assert member["target"] == 300.0
        assert member["deptId"] == "dept-b"

    def test_register_staff_unknown_department(self, seeded):
        with pytest.raises(RecordNotFoundError):
            FeeDataService(seeded).register_staff("C", "dept-x", 300)

    def test_update_staff(self, seeded):
        service = FeeDataService(seeded)
        member = service.update_staff("s-a", {"deptId": None, "target": 500, "collectedAmount": 120})

        assert member["deptId"] is None
        assert member["target"] == 500.0
        assert member["collectedAmount"] == 120.0

    def test_update_staff_rejects_negative_total(self, seeded):
        with pytest.raises(ValueError):
            FeeDataService(seeded).update_staff("s-a", {"collectedAmount": -1})

    def test_unknown_ids_raise(self, seeded):
        service = FeeDataService(seeded)
        with pytest.raises(RecordNotFoundError):
            service.update_department("nope", {"name": "x"})
        with pytest.raises(RecordNotFoundError):
            service.delete_department("nope")
        with pytest.raises(RecordNotFoundError):
            service.update_staff("nope", {"name": "x"})
        with pytest.raises(RecordNotFoundError):
            service.delete_staff("nope")
