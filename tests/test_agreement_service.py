"""
Tests for /list, the agreement detail view and deletion.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from conftest import OTHER_USER, USER


def tokens(buttons):
    return [[b.callback_data for b in row] for row in buttons]


@pytest.fixture
def lease(repository):
    return repository.add(
        USER, "rent", "Flat 3B",
        user_role="tenant",
        start_date=date(2026, 11, 1),
        contract_duration_years=1,
        currency="TRY",
        rent_amount=Decimal("15000.00"),
        due_day=5,
        has_monthly_reminder=True,
        reminder_timing="3_days_before",
        has_yearly_increase_reminder=False,
    )


@pytest.fixture
def bills(repository):
    return repository.add(USER, "custom", "Bills", description="Water and power", currency="EUR")


class TestList:
    async def test_empty_shows_main_menu(self, agreement_service):
        prompts = await agreement_service.list_agreements(USER, "en")

        assert len(prompts) == 1
        assert prompts[0].text == "list.empty"
        assert tokens(prompts[0].buttons) == [["menu:rent"], ["menu:custom"]]

    async def test_one_message_per_agreement(self, agreement_service, repository, lease, bills):
        repository.add(OTHER_USER, "custom", "Not mine")
        repository.add_reminder(bills, date(2026, 11, 1))
        repository.add_reminder(bills, date(2026, 12, 1))
        repository.add_reminder(bills, date(2026, 10, 1), status="acknowledged")

        prompts = await agreement_service.list_agreements(USER, "en")

        assert [p.text for p in prompts] == [
            "list.header",
            "list.rent_item:Flat 3B,15,000.00,TRY,5",
            "list.custom_item:Bills,2",
        ]
        assert tokens(prompts[1].buttons) == [[f"agr:view:{lease.id}", f"agr:delete:{lease.id}"]]

    async def test_storage_failure(self, agreement_service, repository, reporter):
        repository.fail_read = True

        prompts = await agreement_service.list_agreements(USER, "en")

        assert [p.text for p in prompts] == ["errors.action_failed"]
        assert reporter.events[0][0] == "list_agreements"


class TestDetail:
    """The detail view shows fields, upcoming reminders and edit buttons."""

    async def test_rent_detail(self, agreement_service, repository, lease):
        repository.add_reminder(lease, date(2026, 11, 2), amount=Decimal("15000.00"), reminder_type="pre_notify")
        repository.add_reminder(lease, date(2026, 11, 5), amount=Decimal("15000.00"))
        repository.add_reminder(lease, date(2026, 10, 5), status="acknowledged")

        reply = await agreement_service.on_callback(USER, "en", f"agr:view:{lease.id}")

        lines = reply.prompt.text.split("\n")
        assert lines[0] == "detail.rent_header:Flat 3B"
        assert "summary.role:role.tenant" in lines
        assert "summary.start_date:01.11.2026" in lines
        assert "summary.monthly_reminder:detail.on" in lines
        assert "summary.timing:timing.3_days_before" in lines
        assert "summary.yearly_increase:detail.off" in lines
        assert "detail.reminders_header:2" in lines
        assert "• 02.11.2026 · Rent: Flat 3B · 15,000.00 TRY" in lines
        assert "• 05.10.2026 · Rent: Flat 3B" not in lines

    async def test_rent_edit_buttons(self, agreement_service, lease):
        reply = await agreement_service.view(USER, lease.id, "en")

        assert tokens(reply.prompt.buttons) == [
            [f"edit:{lease.id}:title"],
            [f"edit:{lease.id}:amount"],
            [f"edit:{lease.id}:due_day"],
            [f"edit:{lease.id}:monthly"],
            [f"edit:{lease.id}:timing"],
            [f"edit:{lease.id}:yearly"],
            [f"agr:delete:{lease.id}"],
        ]
        labels = [row[0].label for row in reply.prompt.buttons]
        assert labels[3] == "detail.toggle_button:field.monthly,detail.on"
        assert labels[5] == "detail.toggle_button:field.yearly,detail.off"

    async def test_custom_detail_without_reminders(self, agreement_service, bills):
        reply = await agreement_service.view(USER, bills.id, "en")

        assert reply.prompt.text.split("\n") == [
            "detail.custom_header:Bills",
            "",
            "summary.description:Water and power",
            "",
            "detail.no_reminders",
        ]
        assert tokens(reply.prompt.buttons) == [
            [f"edit:{bills.id}:title"],
            [f"edit:{bills.id}:description"],
            [f"agr:delete:{bills.id}"],
        ]

    async def test_long_reminder_list_is_cut(self, agreement_service, repository, bills):
        for week in range(12):
            repository.add_reminder(bills, date(2026, 11, 1) + timedelta(weeks=week))

        reply = await agreement_service.view(USER, bills.id, "en")

        assert reply.prompt.text.count("• ") == 10
        assert reply.prompt.text.endswith("detail.more_reminders:2")

    async def test_other_users_agreement(self, agreement_service, lease):
        reply = await agreement_service.on_callback(OTHER_USER, "en", f"agr:view:{lease.id}")
        assert reply.notice == "detail.not_found"
        assert reply.prompt is None

    async def test_storage_failure(self, agreement_service, repository, reporter, lease):
        repository.fail_read = True

        reply = await agreement_service.on_callback(USER, "en", f"agr:view:{lease.id}")

        assert reply.notice == "errors.action_failed"
        event, _, context = reporter.events[0]
        assert event == "view_agreement"
        assert context == {"user_id": USER, "agreement_id": lease.id}


class TestDelete:
    """Deleting asks first and removes the reminders with the agreement."""

    async def test_asks_for_confirmation(self, agreement_service, repository, lease):
        repository.add_reminder(lease, date(2026, 11, 5))

        reply = await agreement_service.on_callback(USER, "en", f"agr:delete:{lease.id}")

        assert reply.prompt.text == "detail.delete_confirm:Flat 3B,1"
        assert tokens(reply.prompt.buttons) == [[f"agr:delete_confirm:{lease.id}"], [f"agr:view:{lease.id}"]]
        assert lease.id in repository.agreements

    async def test_confirm_removes_agreement_and_reminders(self, agreement_service, repository, lease, bills):
        repository.add_reminder(lease, date(2026, 11, 5))
        repository.add_reminder(bills, date(2026, 12, 1))

        reply = await agreement_service.on_callback(USER, "en", f"agr:delete_confirm:{lease.id}")

        assert reply.prompt.text == "detail.deleted:Flat 3B"
        assert reply.prompt.buttons is None
        assert list(repository.agreements) == [bills.id]
        assert list(repository.reminders) == [bills.id]
        assert await repository.list_reminders(lease.id) == []

    async def test_other_user_cannot_delete(self, agreement_service, repository, lease):
        reply = await agreement_service.on_callback(OTHER_USER, "en", f"agr:delete_confirm:{lease.id}")

        assert reply.notice == "detail.not_found"
        assert repository.deleted == []

    async def test_second_confirm_press(self, agreement_service, lease):
        await agreement_service.delete(USER, lease.id, "en")
        reply = await agreement_service.delete(USER, lease.id, "en")
        assert reply.notice == "detail.not_found"

    @pytest.mark.parametrize("token", ["agr:explode:1", "agr:view:abc", "agr:view:", "agr:"])
    async def test_malformed_tokens(self, agreement_service, token):
        reply = await agreement_service.on_callback(USER, "en", token)
        assert reply.notice == "validation.use_buttons"
