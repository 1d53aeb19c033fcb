"""
Flow router — drives one user through a conversation, one event at a time.

For every inbound text or button press the router:
  1. loads the user's state and drops it if expired
  2. applies router-level tokens (cancel, main menu, edit entry)
  3. otherwise hands the input to the step registered for the state
  4. on a valid answer persists the new (state, draft, expiry) or runs
     the commit stage when the flow is finished
  5. returns an ``Outcome``, which ``render`` turns into outgoing messages

Invalid input never writes: state, draft and expiry stay as they were.
Storage failures are reported to the operator channel and leave the
stored state untouched; the current step is shown again so the user can
resend the answer or press the same button.

This module is platform-agnostic. Adapters call ``on_text`` /
``on_callback`` and deliver whatever comes back.
"""

import logging
from dataclasses import replace
from datetime import date
from functools import partial

from agreement_bot.adapters.base import OutgoingMessage
from agreement_bot.core.commit import CommitStage
from agreement_bot.core.drafts import Draft, EditDraft, empty_draft, load_draft
from agreement_bot.core.errors import CapacityExceeded, PersistenceError, UnknownState, ValidationError
from agreement_bot.core.expiry import ExpiryPolicy
from agreement_bot.core.outcomes import Advance, Cancelled, Completed, Failed, Outcome, Rejected, Unknown
from agreement_bot.core.ports import AgreementRepository, ConversationRecord, ErrorReporter, Localizer, StateStore
from agreement_bot.core.prompts import RenderContext, Translator, main_menu_rows
from agreement_bot.core.states import (
    CALENDAR_NOOP_TOKEN,
    CANCEL_TOKEN,
    EDIT_FIELD_STATES,
    EDIT_TOKEN_PREFIX,
    MENU_CUSTOM_TOKEN,
    MENU_RENT_TOKEN,
    TOGGLE_FIELDS,
    FlowKind,
    flow_kind_for,
)
from agreement_bot.core.steps import FIRST_STEP, REGISTRY, TERMINAL, Step, finish_reminders, get_step
from agreement_bot.core.validators import Invalid, StepContext, Validation

logger = logging.getLogger(__name__)

MENU_TOKENS = {
    MENU_RENT_TOKEN: FlowKind.RENT,
    MENU_CUSTOM_TOKEN: FlowKind.CUSTOM,
}

# Which agreement types each editable field applies to
EDITABLE_FIELDS = {
    "title": ("rent", "custom"),
    "amount": ("rent",),
    "due_day": ("rent",),
    "description": ("custom",),
    "timing": ("rent",),
    "monthly": ("rent",),
    "yearly": ("rent",),
}


class FlowRouter:
    def __init__(
        self,
        store: StateStore,
        repository: AgreementRepository,
        localize: Localizer,
        reporter: ErrorReporter,
        expiry: ExpiryPolicy | None = None,
        max_reminders: int = 20,
        default_locale: str = "tr",
    ) -> None:
        self._store = store
        self._repo = repository
        self._localize = localize
        self._reporter = reporter
        self._expiry = expiry or ExpiryPolicy()
        self._commit = CommitStage(repository)
        self.max_reminders = max_reminders
        self.default_locale = default_locale

    # ── Adapter surface ──────────────────────────────────────

    async def on_text(
        self,
        user_id: int,
        chat_id: str,
        thread_id: int | None,
        locale: str | None,
        text: str,
    ) -> list[OutgoingMessage]:
        locale = locale or self.default_locale
        try:
            record = await self.active_state(user_id)
        except PersistenceError as e:
            outcome: Outcome = await self._fail("load_state", e, user_id, None)
        else:
            state_id, draft = _unpack(record)
            outcome = await self.handle_text_input(user_id, state_id, draft, text, locale)
        return self.render(outcome, chat_id, thread_id, locale)

    async def on_callback(
        self,
        user_id: int,
        chat_id: str,
        thread_id: int | None,
        locale: str | None,
        token: str,
        message_id: str | None = None,
    ) -> list[OutgoingMessage]:
        """
        Handle a button press.

        When the press re-renders the same step (calendar paging) and the
        originating ``message_id`` is known, the reply edits that message.
        """
        if token == CALENDAR_NOOP_TOKEN:
            return []
        locale = locale or self.default_locale
        try:
            record = await self.active_state(user_id)
        except PersistenceError as e:
            outcome: Outcome = await self._fail("load_state", e, user_id, None)
        else:
            state_id, draft = _unpack(record)
            outcome = await self.handle_choice_input(user_id, state_id, draft, token, locale)

        messages = self.render(outcome, chat_id, thread_id, locale)
        if isinstance(outcome, Advance) and outcome.same_step and message_id:
            for message in messages:
                message.edit_message_id = message_id
        return messages

    async def active_state(self, user_id: int) -> ConversationRecord | None:
        """The user's stored state, or None when absent or expired."""
        return self._expiry.active(await self._store.load_state(user_id))

    # ── Engine entry points ──────────────────────────────────

    async def handle_text_input(
        self,
        user_id: int,
        state_id: str | None,
        draft: Draft | None,
        raw_text: str,
        locale: str | None = None,
    ) -> Outcome:
        rc = self._render_context(locale)
        try:
            step, draft = _resolve(state_id, draft)
        except UnknownState:
            return Unknown()
        result = step.validate_text(raw_text, self._step_context(draft))
        return await self._apply(user_id, step, draft, result, rc)

    async def handle_choice_input(
        self,
        user_id: int,
        state_id: str | None,
        draft: Draft | None,
        token: str,
        locale: str | None = None,
    ) -> Outcome:
        rc = self._render_context(locale)

        # Router-level tokens work in any state, including none
        if token == CANCEL_TOKEN:
            return await self._cancel(user_id, had_flow=state_id is not None)
        if token in MENU_TOKENS:
            return await self.start_flow(user_id, MENU_TOKENS[token], rc.locale)
        if token.startswith(EDIT_TOKEN_PREFIX):
            return await self._start_edit_from_token(user_id, token, rc)

        try:
            step, draft = _resolve(state_id, draft)
        except UnknownState:
            return Unknown()
        try:
            result = step.validate_choice(token, self._step_context(draft))
        except CapacityExceeded as e:
            logger.info("User %d hit the reminder limit (%d), moving to summary", user_id, e.limit)
            new_draft, next_state = finish_reminders(draft)
            outcome = await self._advance(
                user_id, step, new_draft, next_state, rc,
                notice=rc.t("custom.capacity_reached", e.limit),
            )
            return _retry_at(outcome, step, draft, rc)
        if result is None:
            result = Invalid("validation.use_buttons")
        return await self._apply(user_id, step, draft, result, rc)

    async def start_flow(self, user_id: int, kind: FlowKind, locale: str | None = None) -> Outcome:
        """Begin ``kind`` at its first step, discarding any flow in progress."""
        rc = self._render_context(locale)
        first = REGISTRY[FIRST_STEP[kind]]
        draft = empty_draft(kind)
        logger.info("User %d started %s flow", user_id, kind.value)
        return await self._persist(user_id, first, draft, rc, from_state=None)

    async def start_edit(
        self,
        user_id: int,
        agreement_id: int,
        field: str,
        locale: str | None = None,
    ) -> Outcome:
        """
        Start editing one field of an agreement the user owns.

        Toggle fields are flipped right away; every other field opens the
        matching edit step.
        """
        rc = self._render_context(locale)
        if field not in EDITABLE_FIELDS:
            return Rejected("edit.unknown_field")
        try:
            agreement = await self._repo.get_agreement(agreement_id)
        except PersistenceError as e:
            return await self._fail("get_agreement", e, user_id, None)
        if agreement is None or agreement.owner_telegram_id != user_id:
            return Rejected("edit.not_found")
        if agreement.agreement_type not in EDITABLE_FIELDS[field]:
            return Rejected("edit.unknown_field")

        if field in TOGGLE_FIELDS:
            try:
                result = await self._commit.toggle(user_id, agreement, field, rc.today, rc.t)
            except PersistenceError as e:
                return await self._fail("toggle", e, user_id, None)
            return Completed(result.record_id, result.summary)

        state_id = EDIT_FIELD_STATES[field]
        draft = EditDraft(agreement_id=agreement_id, field=field)
        logger.info("User %d editing %s of agreement %d", user_id, field, agreement_id)
        return await self._persist(user_id, REGISTRY[state_id], draft, rc, from_state=None)

    async def cancel(self, user_id: int) -> Outcome:
        """Drop whatever flow the user is in. Safe to call with no flow."""
        try:
            record = await self.active_state(user_id)
        except PersistenceError as e:
            return await self._fail("load_state", e, user_id, None)
        return await self._cancel(user_id, had_flow=record is not None)

    # ── Rendering ────────────────────────────────────────────

    def render(
        self,
        outcome: Outcome,
        chat_id: str,
        thread_id: int | None,
        locale: str | None = None,
    ) -> list[OutgoingMessage]:
        t = self._translator(locale)

        def message(text: str, buttons=None) -> OutgoingMessage:
            return OutgoingMessage(chat_id=chat_id, text=text, buttons=buttons, thread_id=thread_id)

        if isinstance(outcome, Advance):
            return [message(outcome.prompt.text, outcome.prompt.buttons)]
        if isinstance(outcome, Completed):
            return [message(outcome.summary, main_menu_rows(t))]
        if isinstance(outcome, Cancelled):
            key = "flow.cancelled" if outcome.had_flow else "flow.nothing_to_cancel"
            return [message(t(key), main_menu_rows(t))]
        if isinstance(outcome, Rejected):
            error = t(outcome.reason, *outcome.args)
            if outcome.prompt is not None:
                prompt = outcome.prompt.with_error(error)
                return [message(prompt.text, prompt.buttons)]
            return [message(f"⚠️ {error}")]
        if isinstance(outcome, Unknown):
            return [message(t("flow.unknown_state"), main_menu_rows(t))]
        if outcome.prompt is not None:
            prompt = outcome.prompt.with_error(t(outcome.reason))
            return [message(prompt.text, prompt.buttons)]
        return [message(t(outcome.reason))]

    # ── Internals ────────────────────────────────────────────

    def _translator(self, locale: str | None) -> Translator:
        return partial(self._localize, locale or self.default_locale)

    def _render_context(self, locale: str | None) -> "_Render":
        locale = locale or self.default_locale
        return _Render(locale, self._translator(locale), self._expiry.today())

    def _step_context(self, draft: Draft) -> StepContext:
        return StepContext(draft=draft, today=self._expiry.today(), max_reminders=self.max_reminders)

    async def _apply(self, user_id: int, step: Step, draft: Draft, result: Validation, rc: "_Render") -> Outcome:
        if isinstance(result, Invalid):
            logger.debug("User %d: rejected at %s (%s)", user_id, step.state_id, result.reason)
            return Rejected(result.reason, result.args, step.render(draft, rc.context))

        value = result.value
        if step.unique_title:
            exclude = draft.agreement_id if isinstance(draft, EditDraft) else None
            try:
                taken = await self._repo.title_taken(user_id, value, exclude_id=exclude)
            except PersistenceError as e:
                failed = await self._fail("title_taken", e, user_id, step.state_id)
                return _retry_at(failed, step, draft, rc)
            if taken:
                return Rejected("validation.duplicate_title", (), step.render(draft, rc.context))

        new_draft, next_state = step.transition(draft, value)
        if next_state == TERMINAL:
            outcome = await self._complete(user_id, step, new_draft, rc)
        else:
            outcome = await self._advance(user_id, step, new_draft, next_state, rc)
        return _retry_at(outcome, step, draft, rc)

    async def _advance(
        self,
        user_id: int,
        step: Step,
        draft: Draft,
        next_state: str,
        rc: "_Render",
        notice: str | None = None,
    ) -> Outcome:
        outcome = await self._persist(user_id, REGISTRY[next_state], draft, rc, from_state=step.state_id)
        if notice and isinstance(outcome, Advance):
            return Advance(outcome.next_state, outcome.prompt.with_header(notice), outcome.same_step)
        return outcome

    async def _persist(
        self,
        user_id: int,
        step: Step,
        draft: Draft,
        rc: "_Render",
        from_state: str | None,
    ) -> Outcome:
        try:
            await self._store.save_state(user_id, step.state_id, draft.to_payload(), self._expiry.next_expiry())
        except PersistenceError as e:
            return await self._fail("save_state", e, user_id, from_state)
        logger.debug("User %d: %s -> %s", user_id, from_state, step.state_id)
        return Advance(step.state_id, step.render(draft, rc.context), same_step=from_state == step.state_id)

    async def _complete(self, user_id: int, step: Step, draft: Draft, rc: "_Render") -> Outcome:
        try:
            result = await self._commit.commit(user_id, draft, rc.today, rc.t)
        except ValidationError as e:
            # Edit target vanished or changed hands since the flow started
            await self._clear_quietly(user_id, step.state_id)
            return Rejected(e.reason, e.args_)
        except PersistenceError as e:
            return await self._fail("commit", e, user_id, step.state_id)

        await self._clear_quietly(user_id, step.state_id)
        return Completed(result.record_id, result.summary)

    async def _clear_quietly(self, user_id: int, state_id: str) -> None:
        """Clear after the record is stored; a failure only leaves a row to expire."""
        try:
            await self._store.clear_state(user_id)
        except PersistenceError as e:
            await self._report("clear_state", e, user_id, state_id)

    async def _cancel(self, user_id: int, had_flow: bool) -> Outcome:
        try:
            await self._store.clear_state(user_id)
        except PersistenceError as e:
            return await self._fail("clear_state", e, user_id, None)
        if had_flow:
            logger.info("User %d cancelled their flow", user_id)
        return Cancelled(had_flow=had_flow)

    async def _start_edit_from_token(self, user_id: int, token: str, rc: "_Render") -> Outcome:
        # edit:<agreement_id>:<field>
        raw_id, _, field = token[len(EDIT_TOKEN_PREFIX):].partition(":")
        try:
            agreement_id = int(raw_id)
        except ValueError:
            return Rejected("validation.use_buttons")
        return await self.start_edit(user_id, agreement_id, field, rc.locale)

    async def _fail(self, event: str, error: PersistenceError, user_id: int, state_id: str | None) -> Failed:
        await self._report(event, error, user_id, state_id)
        return Failed("errors.persistence")

    async def _report(self, event: str, error: PersistenceError, user_id: int, state_id: str | None) -> None:
        logger.error("Persistence failure in %s for user %d (state=%s): %s", event, user_id, state_id, error)
        await self._reporter.report(event, error, {"user_id": user_id, "state_id": state_id})


class _Render:
    """Per-event locale bundle: translator, today's date and the prompt context."""

    def __init__(self, locale: str, t: Translator, today: date) -> None:
        self.locale = locale
        self.t = t
        self.today = today
        self.context = RenderContext(t=t, today=today)


def _retry_at(outcome: Outcome, step: Step, draft: Draft, rc: _Render) -> Outcome:
    """Storage failure inside a step: re-show that step so its buttons can be pressed again."""
    if isinstance(outcome, Failed) and outcome.prompt is None:
        return replace(outcome, prompt=step.render(draft, rc.context))
    return outcome


def _unpack(record: ConversationRecord | None) -> tuple[str | None, Draft | None]:
    if record is None:
        return None, None
    kind = flow_kind_for(record.state_id)
    if kind is None:
        return record.state_id, None
    return record.state_id, load_draft(kind, record.payload)


def _resolve(state_id: str | None, draft: Draft | None) -> tuple[Step, Draft]:
    """Step and draft for an active state; raises UnknownState otherwise."""
    step = get_step(state_id) if state_id else None
    if step is None:
        raise UnknownState(state_id or "")
    if draft is None:
        draft = empty_draft(step.flow)
    return step, draft
