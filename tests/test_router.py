"""
Tests for the flow router: full conversations against in-memory storage.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from agreement_bot.core import states as s
from agreement_bot.core.drafts import CustomDraft, CustomReminderDraft, RentDraft
from agreement_bot.core.outcomes import Advance, Cancelled, Failed, Rejected, Unknown
from agreement_bot.core.states import FlowKind

from conftest import CHAT, OTHER_USER, USER


async def say(router, text, user=USER):
    return await router.on_text(user, CHAT, None, "en", text)


async def press(router, token, user=USER, message_id=None):
    return await router.on_callback(user, CHAT, None, "en", token, message_id=message_id)


def state_of(store, user=USER):
    row = store.rows.get(user)
    return row.state_id if row else None


async def rent_until_amount(router):
    await press(router, "menu:rent")
    await say(router, "Flat 3B")
    await press(router, "rent:role:tenant")
    await say(router, "2026")
    await say(router, "11")
    await say(router, "1")
    await press(router, "rent:duration:1")
    await press(router, "rent:currency:TRY")


class TestRentFlow:
    """End-to-end rent agreement conversations."""

    async def test_menu_starts_at_title(self, router, store):
        messages = await press(router, "menu:rent")
        assert state_of(store) == s.RENT_TITLE
        assert messages[0].text.startswith("flow.step_header:1,12")

    async def test_title_is_stored_and_role_asked(self, router, store):
        await press(router, "menu:rent")
        messages = await say(router, "Flat 3B")
        assert state_of(store) == s.RENT_ROLE
        assert store.rows[USER].payload["title"] == "Flat 3B"
        assert "rent.role_prompt:Flat 3B" in messages[0].text
        tokens = [b.callback_data for row in messages[0].buttons for b in row]
        assert "rent:role:tenant" in tokens and "flow:cancel" in tokens

    async def test_full_flow_commits_once(self, router, store, repository):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "5")
        await press(router, "rent:monthly:yes")
        await press(router, "rent:timing:3_days_before")
        await press(router, "rent:yearly:yes")
        assert state_of(store) == s.RENT_SUMMARY

        messages = await press(router, "rent:confirm")

        assert len(repository.created) == 1
        user_id, fields, reminders = repository.created[0]
        assert user_id == USER
        assert fields["title"] == "Flat 3B"
        assert fields["start_date"] == date(2026, 11, 1)
        assert fields["rent_amount"] == Decimal("15000.00")
        assert fields["reminder_timing"] == "3_days_before"
        assert fields["contract_duration_years"] == 1
        assert len(reminders) == 55
        assert state_of(store) is None
        assert messages[0].text == "rent.success:Flat 3B,55"

    async def test_monthly_no_goes_to_yearly_increase(self, router, store):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "5")
        await press(router, "rent:monthly:no")
        assert state_of(store) == s.RENT_YEARLY_INCREASE
        assert store.rows[USER].payload["has_monthly_reminder"] is False

    async def test_late_due_day_note_on_summary(self, router):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "31")
        await press(router, "rent:monthly:no")
        messages = await press(router, "rent:yearly:no")
        assert "rent.late_day_note:31" in messages[0].text


class TestInvalidInput:
    """Rejected input never writes."""

    async def test_state_untouched(self, router, store, clock):
        await rent_until_amount(router)
        before = store.rows[USER]
        saves = store.saves
        clock.advance(minutes=5)

        messages = await say(router, "abc")

        assert store.rows[USER] == before
        assert store.saves == saves
        assert messages[0].text.startswith("⚠️ validation.invalid_amount")
        assert "rent.amount_prompt" in messages[0].text

    async def test_wrong_button_for_step(self, router, store):
        await press(router, "menu:rent")
        await say(router, "Flat 3B")
        outcome = await router.handle_choice_input(
            USER, s.RENT_ROLE, RentDraft(title="Flat 3B"), "rent:currency:TRY", "en",
        )
        assert isinstance(outcome, Rejected)
        assert outcome.reason == "validation.use_buttons"
        assert state_of(store) == s.RENT_ROLE

    async def test_duplicate_title(self, router, store, repository):
        repository.add(USER, "rent", "Flat 3B")
        await press(router, "menu:rent")
        messages = await say(router, "Flat 3B")
        assert state_of(store) == s.RENT_TITLE
        assert store.rows[USER].payload["title"] is None
        assert "validation.duplicate_title" in messages[0].text

    async def test_same_title_of_another_user_is_fine(self, router, store, repository):
        repository.add(OTHER_USER, "rent", "Flat 3B")
        await press(router, "menu:rent")
        await say(router, "Flat 3B")
        assert state_of(store) == s.RENT_ROLE


class TestCancelAndExpiry:
    async def test_cancel_clears_flow(self, router, store):
        await press(router, "menu:rent")
        messages = await press(router, "flow:cancel")
        assert state_of(store) is None
        assert messages[0].text == "flow.cancelled"

    async def test_cancel_without_flow_is_harmless(self, router, store):
        assert await router.cancel(USER) == Cancelled(had_flow=False)
        assert await router.cancel(USER) == Cancelled(had_flow=False)
        messages = await press(router, "flow:cancel")
        assert messages[0].text == "flow.nothing_to_cancel"

    async def test_text_without_flow(self, router):
        messages = await say(router, "hello")
        assert messages[0].text == "flow.unknown_state"

    async def test_expired_state_is_ignored(self, router, clock):
        await press(router, "menu:rent")
        clock.advance(minutes=31)
        assert await router.active_state(USER) is None
        outcome = await router.handle_text_input(USER, None, None, "Flat 3B", "en")
        assert isinstance(outcome, Unknown)
        messages = await say(router, "Flat 3B")
        assert messages[0].text == "flow.unknown_state"

    async def test_deadline_itself_is_still_active(self, router, clock):
        await press(router, "menu:rent")
        clock.advance(minutes=30)
        assert await router.active_state(USER) is not None

    async def test_each_answer_extends_the_deadline(self, router, store, clock):
        await press(router, "menu:rent")
        clock.advance(minutes=20)
        await say(router, "Flat 3B")
        assert store.rows[USER].expires_at == clock.current + timedelta(minutes=30)


class TestReentrancy:
    async def test_menu_mid_rent_starts_custom(self, router, store, repository):
        await rent_until_amount(router)
        assert state_of(store) == s.RENT_AMOUNT

        await press(router, "menu:custom")

        assert state_of(store) == s.CUSTOM_TITLE
        assert store.rows[USER].payload == CustomDraft().to_payload()
        assert repository.created == []

    async def test_start_flow_directly(self, router, store):
        outcome = await router.start_flow(USER, FlowKind.CUSTOM, "en")
        assert isinstance(outcome, Advance)
        assert outcome.next_state == s.CUSTOM_TITLE


class TestCustomFlow:
    """The custom agreement reminder loop."""

    async def test_two_reminders(self, router, store, repository):
        await press(router, "menu:custom")
        await say(router, "Dues")
        await press(router, "custom:skip_description")
        await say(router, "First payment")
        await say(router, "20.10.2026")
        await say(router, "250")
        assert state_of(store) == s.CUSTOM_CURRENCY
        await press(router, "custom:currency:EUR")
        await press(router, "custom:timing:same_day")
        assert state_of(store) == s.CUSTOM_REMINDER_LIST

        await press(router, "custom:add_another")
        await say(router, "Second payment")
        await press(router, "custom:cal:day:2026:11:3")
        await say(router, "100")
        assert state_of(store) == s.CUSTOM_REMINDER_TIMING
        await press(router, "custom:timing:1_day_before")
        await press(router, "custom:finish")
        assert state_of(store) == s.CUSTOM_SUMMARY

        messages = await press(router, "custom:confirm")

        _, fields, reminders = repository.created[0]
        assert fields == {"agreement_type": "custom", "title": "Dues", "description": None, "currency": "EUR"}
        assert [(r.reminder_type, r.reminder_date) for r in reminders] == [
            ("due_day", date(2026, 10, 20)),
            ("pre_notify", date(2026, 11, 2)),
            ("due_day", date(2026, 11, 3)),
        ]
        assert state_of(store) is None
        assert messages[0].text == "custom.success:Dues,2"

    async def test_past_typed_date(self, router, store):
        await press(router, "menu:custom")
        await say(router, "Dues")
        await press(router, "custom:skip_description")
        await say(router, "First payment")
        messages = await say(router, "01.01.2020")
        assert state_of(store) == s.CUSTOM_REMINDER_DATE
        assert "validation.past_date" in messages[0].text

    async def test_calendar_paging_edits_the_message(self, router, store):
        await press(router, "menu:custom")
        await say(router, "Dues")
        await press(router, "custom:skip_description")
        await say(router, "First payment")

        messages = await press(router, "custom:cal:next:2026:10", message_id="55")

        assert state_of(store) == s.CUSTOM_REMINDER_DATE
        assert store.rows[USER].payload["calendar_month"] == "2026-11"
        assert messages[0].edit_message_id == "55"
        tokens = [b.callback_data for row in messages[0].buttons for b in row]
        assert "custom:cal:day:2026:11:1" in tokens

    async def test_inert_calendar_cell(self, router, store):
        await press(router, "menu:custom")
        saves = store.saves
        assert await press(router, "custom:cal:noop") == []
        assert store.saves == saves


class TestReminderLimit:
    async def seed(self, store, clock, count):
        reminders = [
            CustomReminderDraft(title=f"r{i}", date="20.10.2026", timing="same_day") for i in range(count)
        ]
        draft = CustomDraft(title="Dues", reminders=reminders)
        await store.save_state(USER, s.CUSTOM_REMINDER_LIST, draft.to_payload(), clock.current + timedelta(minutes=30))

    async def test_below_limit_adds(self, router, store, clock):
        await self.seed(store, clock, 19)
        await press(router, "custom:add_another")
        assert state_of(store) == s.CUSTOM_REMINDER_TITLE

    async def test_limit_redirects_to_summary(self, router, store, clock):
        await self.seed(store, clock, 20)

        messages = await press(router, "custom:add_another")

        assert state_of(store) == s.CUSTOM_SUMMARY
        assert len(store.rows[USER].payload["reminders"]) == 20
        assert messages[0].text.startswith("custom.capacity_reached:20")


class TestPersistenceFailures:
    """Storage errors are reported and leave the stored state as it was."""

    async def test_save_failure(self, router, store, reporter):
        await press(router, "menu:rent")
        store.fail_save = True

        messages = await say(router, "Flat 3B")

        assert messages[0].text.startswith("⚠️ errors.persistence\n\n")
        assert "rent.title_prompt" in messages[0].text
        assert state_of(store) == s.RENT_TITLE
        assert store.rows[USER].payload["title"] is None
        event, error, context = reporter.events[0]
        assert event == "save_state"
        assert context == {"user_id": USER, "state_id": s.RENT_TITLE}

    async def test_commit_failure_keeps_summary(self, router, store, repository, reporter):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "5")
        await press(router, "rent:monthly:no")
        await press(router, "rent:yearly:no")
        repository.fail_create = True

        outcome = await router.handle_choice_input(
            USER, s.RENT_SUMMARY, RentDraft.model_validate(store.rows[USER].payload), "rent:confirm", "en",
        )

        assert isinstance(outcome, Failed)
        assert outcome.reason == "errors.persistence"
        assert outcome.prompt is not None
        assert state_of(store) == s.RENT_SUMMARY
        assert reporter.events[0][0] == "commit"

    async def test_confirm_button_survives_commit_failure(self, router, store, repository):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "5")
        await press(router, "rent:monthly:yes")
        await press(router, "rent:timing:3_days_before")
        await press(router, "rent:yearly:yes")
        repository.fail_create = True

        messages = await press(router, "rent:confirm", message_id="77")

        assert len(messages) == 1
        assert messages[0].text.startswith("⚠️ errors.persistence")
        assert "rent.summary_title" in messages[0].text
        assert messages[0].edit_message_id is None
        tokens = [b.callback_data for row in messages[0].buttons for b in row]
        assert "rent:confirm" in tokens and "flow:cancel" in tokens
        assert state_of(store) == s.RENT_SUMMARY

        repository.fail_create = False
        messages = await press(router, "rent:confirm")

        assert len(repository.created) == 1
        assert state_of(store) is None
        assert messages[0].text.startswith("rent.success:Flat 3B")

    async def test_failed_button_step_keeps_its_buttons(self, router, store):
        await rent_until_amount(router)
        await say(router, "15000")
        await say(router, "5")
        store.fail_save = True

        messages = await press(router, "rent:monthly:yes")

        tokens = [b.callback_data for row in messages[0].buttons for b in row]
        assert tokens == ["rent:monthly:yes", "rent:monthly:no", "flow:cancel"]
        assert state_of(store) == s.RENT_MONTHLY_REMINDER

    async def test_load_failure(self, router, store, reporter):
        store.fail_load = True
        messages = await say(router, "Flat 3B")
        assert messages[0].text == "errors.persistence"
        assert messages[0].buttons is None
        assert reporter.events[0][0] == "load_state"


class TestEditFlow:
    """Editing a single field of an existing agreement."""

    @pytest.fixture
    def flat(self, repository):
        return repository.add(USER, "rent", "Flat 3B", currency="TRY", rent_amount=Decimal("15000.00"), due_day=5)

    async def test_edit_amount(self, router, store, repository, flat):
        await press(router, f"edit:{flat.id}:amount")
        assert state_of(store) == s.EDIT_AMOUNT

        messages = await say(router, "17500")

        assert repository.updates == [(flat.id, USER, {"rent_amount": Decimal("17500.00")})]
        assert state_of(store) is None
        assert messages[0].text == "edit.success:field.amount"

    async def test_keeping_own_title_is_allowed(self, router, store, repository, flat):
        await press(router, f"edit:{flat.id}:title")
        await say(router, "Flat 3B")
        assert repository.updates == [(flat.id, USER, {"title": "Flat 3B"})]
        assert state_of(store) is None

    async def test_other_users_agreement(self, router, store, flat):
        messages = await press(router, f"edit:{flat.id}:amount", user=OTHER_USER)
        assert state_of(store, OTHER_USER) is None
        assert "edit.not_found" in messages[0].text

    async def test_field_not_editable_for_type(self, router, store, flat):
        outcome = await router.start_edit(USER, flat.id, "description", "en")
        assert outcome == Rejected("edit.unknown_field")
        assert state_of(store) is None

    async def test_malformed_edit_token(self, router):
        outcome = await router.handle_choice_input(USER, None, None, "edit:abc:title", "en")
        assert outcome == Rejected("validation.use_buttons")

    async def test_agreement_removed_mid_edit(self, router, store, repository, flat):
        await press(router, f"edit:{flat.id}:due_day")
        del repository.agreements[flat.id]

        messages = await say(router, "10")

        assert messages[0].text == "⚠️ edit.not_found"
        assert repository.updates == []
        assert state_of(store) is None


class TestReminderSettingsEdit:
    """Reminder toggles and timing edits regenerate the future reminders they shape."""

    @pytest.fixture
    def lease(self, repository):
        return repository.add(
            USER, "rent", "Flat 3B",
            user_role="tenant",
            start_date=date(2026, 11, 1),
            contract_duration_years=1,
            currency="TRY",
            rent_amount=Decimal("15000.00"),
            due_day=5,
            has_monthly_reminder=True,
            reminder_timing="same_day",
            has_yearly_increase_reminder=False,
        )

    async def test_monthly_toggle_off_drops_future_series(self, router, store, repository, lease):
        messages = await press(router, f"edit:{lease.id}:monthly")

        assert repository.updates == [(lease.id, USER, {"has_monthly_reminder": False})]
        assert messages[0].text == "edit.toggle_off:field.monthly"
        assert state_of(store) is None
        replacement = repository.replacements[0]
        assert replacement.reminder_types == ("pre_notify", "due_day")
        assert replacement.after == date(2026, 10, 19)
        assert replacement.reminders == []

    async def test_monthly_toggle_back_on(self, router, repository, lease):
        await press(router, f"edit:{lease.id}:monthly")
        messages = await press(router, f"edit:{lease.id}:monthly")

        assert messages[0].text == "edit.toggle_on:field.monthly"
        assert repository.agreements[lease.id].has_monthly_reminder is True
        reminders = repository.replacements[-1].reminders
        assert len(reminders) == 12
        assert {r.reminder_type for r in reminders} == {"due_day"}
        assert all(r.due_date.day == 5 for r in reminders)

    async def test_yearly_toggle_adds_increase_reminders(self, router, repository, lease):
        messages = await press(router, f"edit:{lease.id}:yearly")

        assert messages[0].text == "edit.toggle_on:field.yearly"
        replacement = repository.replacements[0]
        assert replacement.reminder_types == ("yearly_increase",)
        assert replacement.reminders
        assert all(r.reminder_date > date(2026, 10, 19) for r in replacement.reminders)

    async def test_timing_edit_uses_buttons(self, router, store, repository, lease):
        messages = await press(router, f"edit:{lease.id}:timing")

        assert state_of(store) == s.EDIT_REMINDER_TIMING
        tokens = [b.callback_data for row in messages[0].buttons for b in row]
        assert "edit_timing:1_week_before" in tokens and "flow:cancel" in tokens

        messages = await press(router, "edit_timing:1_week_before")

        assert repository.updates == [(lease.id, USER, {"reminder_timing": "1_week_before"})]
        assert messages[0].text == "edit.success:field.timing"
        assert state_of(store) is None
        pre = [r for r in repository.replacements[0].reminders if r.reminder_type == "pre_notify"]
        assert pre and all(r.due_date - r.reminder_date == timedelta(days=7) for r in pre)

    async def test_timing_edit_rejects_typed_text(self, router, store, lease):
        await press(router, f"edit:{lease.id}:timing")
        messages = await say(router, "tomorrow")
        assert "validation.use_buttons" in messages[0].text
        assert state_of(store) == s.EDIT_REMINDER_TIMING

    async def test_amount_edit_reprices_monthly_series(self, router, repository, lease):
        await press(router, f"edit:{lease.id}:amount")
        await say(router, "17500")

        reminders = repository.replacements[0].reminders
        assert reminders and all(r.amount == Decimal("17500.00") for r in reminders)

    async def test_toggle_on_custom_agreement(self, router, repository):
        bills = repository.add(USER, "custom", "Bills")
        outcome = await router.start_edit(USER, bills.id, "yearly", "en")
        assert outcome == Rejected("edit.unknown_field")
        assert repository.updates == []

    async def test_toggle_of_other_users_agreement(self, router, repository, lease):
        messages = await press(router, f"edit:{lease.id}:monthly", user=OTHER_USER)
        assert "edit.not_found" in messages[0].text
        assert repository.updates == []

    async def test_toggle_failure_is_reported(self, router, repository, reporter, lease):
        repository.fail_update = True

        messages = await press(router, f"edit:{lease.id}:yearly")

        assert messages[0].text == "errors.persistence"
        assert repository.agreements[lease.id].has_yearly_increase_reminder is False
        assert reporter.events[0][0] == "toggle"
