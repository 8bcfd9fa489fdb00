"""Test slot catalog occupancy and administration."""
import pytest

from scheduling.errors import ConflictError, NotFoundError, ValidationError
from scheduling.slot_catalog import SlotAction, SlotCatalog

DAY = "2024-05-01"
GRID = ["08:00", "09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]


@pytest.fixture
def register(database, catalog):
    """Register a slot in its own transaction."""
    def _register(time, provider=3, specialty=2, date=DAY, occupied=False):
        with database.transaction() as db:
            return catalog.register_slot(db, provider, specialty, date, time, occupied=occupied)
    return _register


def test_default_grid_is_nine_hourly_slots(catalog):
    assert catalog.grid == GRID


def test_unregistered_day_lists_full_grid(database, catalog):
    """A day with no registered slots is entirely free."""
    with database.transaction() as db:
        assert catalog.list_available(db, 3, 2, DAY) == GRID


def test_occupied_registered_time_is_not_available(database, catalog, register):
    register("09:00", occupied=True)

    with database.transaction() as db:
        available = catalog.list_available(db, 3, 2, DAY)

    assert "09:00" not in available
    assert "08:00" in available


def test_booked_times_are_excluded_without_a_slot_row(database, catalog):
    with database.transaction() as db:
        available = catalog.list_available(db, 3, 2, DAY, booked=["10:00"])
    assert "10:00" not in available
    assert len(available) == len(GRID) - 1


def test_off_grid_registered_time_is_listed(database, catalog, register):
    register("17:30")

    with database.transaction() as db:
        available = catalog.list_available(db, 3, 2, DAY)

    assert available[-1] == "17:30"
    assert available == sorted(available)


def test_availability_is_scoped_to_provider_and_specialty(database, catalog, register):
    register("09:00", provider=4, occupied=True)
    register("10:00", specialty=5, occupied=True)

    with database.transaction() as db:
        assert catalog.list_available(db, 3, 2, DAY) == GRID


def test_register_duplicate_raises_conflict(register):
    register("09:00")
    with pytest.raises(ConflictError):
        register("09:00")


def test_register_same_time_for_other_specialty_is_allowed(register):
    first = register("09:00", specialty=2)
    second = register("09:00", specialty=6)
    assert first.id != second.id


def test_occupy_and_release_are_idempotent(database, catalog, register):
    register("09:00")

    with database.transaction() as db:
        assert catalog.occupy(db, 3, DAY, "09:00") == 1
        assert catalog.occupy(db, 3, DAY, "09:00") == 1
        assert catalog.is_occupied(db, 3, DAY, "09:00")

    with database.transaction() as db:
        assert catalog.release(db, 3, DAY, "09:00") == 1
        assert catalog.release(db, 3, DAY, "09:00") == 1
        assert not catalog.is_occupied(db, 3, DAY, "09:00")


def test_occupy_without_registered_row_is_noop(database, catalog):
    with database.transaction() as db:
        assert catalog.occupy(db, 3, DAY, "09:00") == 0
        assert catalog.release(db, 3, DAY, "09:00") == 0


def test_list_registered_returns_occupied_times_ascending(database, catalog, register):
    register("14:00", occupied=True)
    register("09:00", occupied=True)
    register("11:00", occupied=False)

    with database.transaction() as db:
        assert catalog.list_registered(db, 3, 2, DAY) == ["09:00", "14:00"]


class TestUpdateSlot:
    """Merge-update only touches supplied fields."""

    def test_updates_only_supplied_fields(self, database, catalog, register):
        slot = register("09:00")

        with database.transaction() as db:
            updated = catalog.update_slot(db, slot.id, time="10:00")

        assert updated.time == "10:00"
        assert updated.date == DAY
        assert updated.provider_id == 3
        assert updated.occupied is False

    def test_requires_at_least_one_field(self, database, catalog, register):
        slot = register("09:00")
        with pytest.raises(ValidationError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id)

    def test_rejects_unknown_fields(self, database, catalog, register):
        slot = register("09:00")
        with pytest.raises(ValidationError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id, room="B")

    def test_missing_slot_raises_not_found(self, database, catalog):
        with pytest.raises(NotFoundError):
            with database.transaction() as db:
                catalog.update_slot(db, 999, time="10:00")

    def test_collision_raises_conflict_and_keeps_slot(self, database, catalog, register):
        register("10:00")
        slot = register("09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id, time="10:00")

        with database.transaction() as db:
            assert catalog.get_slot(db, slot.id).time == "09:00"

    def test_booked_slot_cannot_move(self, database, catalog, ledger, register):
        slot = register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id, time="10:00")

        with database.transaction() as db:
            kept = catalog.get_slot(db, slot.id)
        assert (kept.time, kept.occupied) == ("09:00", True)

    def test_booked_slot_cannot_be_freed(self, database, catalog, ledger, register):
        slot = register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id, occupied=False)

        with database.transaction() as db:
            assert catalog.is_occupied(db, 3, DAY, "09:00")

    def test_booked_slot_accepts_other_fields(self, database, catalog, ledger, register):
        slot = register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with database.transaction() as db:
            updated = catalog.update_slot(db, slot.id, specialty_id=6, occupied=True)

        assert (updated.specialty_id, updated.time, updated.occupied) == (6, "09:00", True)

    def test_moving_onto_booked_time_stores_occupied(self, database, catalog, ledger, register):
        slot = register("11:00")
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with database.transaction() as db:
            updated = catalog.update_slot(db, slot.id, time="09:00")

        assert updated.occupied is True

    def test_moving_onto_booked_time_as_free_conflicts(self, database, catalog, ledger, register):
        slot = register("11:00")
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.update_slot(db, slot.id, time="09:00", occupied=False)

    def test_occupied_without_appointment_is_an_admin_hold(self, database, catalog, register):
        slot = register("09:00")

        with database.transaction() as db:
            assert catalog.update_slot(db, slot.id, occupied=True).occupied is True
            assert "09:00" not in catalog.list_available(db, 3, 2, DAY)

        with database.transaction() as db:
            assert catalog.update_slot(db, slot.id, occupied=False).occupied is False


class TestEditByKey:

    def test_occupy_and_release_by_key(self, database, catalog, register):
        register("09:00")

        with database.transaction() as db:
            assert catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.OCCUPY) == 1
            assert catalog.is_occupied(db, 3, DAY, "09:00")
            assert catalog.edit_by_key(db, 3, DAY, "09:00", "release") == 1
            assert not catalog.is_occupied(db, 3, DAY, "09:00")

    def test_delete_removes_slot(self, database, catalog, register):
        slot = register("09:00")

        with database.transaction() as db:
            assert catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.DELETE) == 1

        with pytest.raises(NotFoundError):
            with database.transaction() as db:
                catalog.get_slot(db, slot.id)

    def test_unknown_key_raises_not_found(self, database, catalog):
        with pytest.raises(NotFoundError):
            with database.transaction() as db:
                catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.OCCUPY)

    def test_delete_refused_while_appointment_is_active(self, database, catalog, ledger, register):
        register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.DELETE)

    def test_release_refused_while_appointment_is_active(self, database, catalog, ledger, register):
        register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")

        with pytest.raises(ConflictError):
            with database.transaction() as db:
                catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.RELEASE)

        with database.transaction() as db:
            assert catalog.is_occupied(db, 3, DAY, "09:00")

    def test_release_allowed_after_cancellation(self, database, catalog, ledger, register):
        register("09:00", occupied=True)
        with database.transaction() as db:
            ledger.create(db, 7, 3, 2, DAY, "09:00")
        with database.transaction() as db:
            ledger.cancel_by_ordinal(db, 7, 1)

        with database.transaction() as db:
            assert catalog.edit_by_key(db, 3, DAY, "09:00", SlotAction.RELEASE) == 1


class TestListFreeBySpecialty:

    def test_lists_free_rows_across_providers_by_time(self, database, catalog, register):
        register("10:00", provider=4)
        register("09:00", provider=5)
        register("10:00", provider=3)
        register("08:00", provider=3, occupied=True)
        register("09:00", provider=3, specialty=6)
        register("09:00", provider=3, date="2024-05-02")

        with database.transaction() as db:
            free = catalog.list_free_by_specialty(db, 2, DAY)

        assert [(s.provider_id, s.time) for s in free] == [(5, "09:00"), (3, "10:00"), (4, "10:00")]

    def test_unregistered_grid_times_are_not_listed(self, database, catalog):
        with database.transaction() as db:
            assert catalog.list_free_by_specialty(db, 2, DAY) == []


def test_custom_grid_is_sorted():
    catalog = SlotCatalog(grid=["10:00", "08:30"])
    assert catalog.grid == ["08:30", "10:00"]
