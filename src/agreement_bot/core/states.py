"""
State identifiers for the multi-step agreement conversations.

Each identifier names the answer the engine is *waiting for*, not the step
that was just completed. States are platform-agnostic strings stored in the
conversation_states table; the flow a state belongs to is encoded in its
prefix (``rent_``, ``custom_``, ``edit_``).
"""

import enum

# Callback tokens recognized by the router before any step dispatch
CANCEL_TOKEN = "flow:cancel"
MENU_RENT_TOKEN = "menu:rent"
MENU_CUSTOM_TOKEN = "menu:custom"
EDIT_TOKEN_PREFIX = "edit:"
CALENDAR_NOOP_TOKEN = "custom:cal:noop"   # inert calendar cells

# Stateless button families handled outside the conversation engine
AGREEMENT_TOKEN_PREFIX = "agr:"           # agr:view:<id>, agr:delete:<id>, agr:delete_confirm:<id>
REMINDER_TOKEN_PREFIX = "rem:"            # rem:done:<id>, rem:snooze:<id>, rem:snooze_<dur>:<id>


class FlowKind(str, enum.Enum):
    RENT = "rent"
    CUSTOM = "custom"
    EDIT = "edit"


def flow_kind_for(state_id: str) -> FlowKind | None:
    """Resolve the owning flow from a state id prefix."""
    prefix, _, _ = state_id.partition("_")
    try:
        return FlowKind(prefix)
    except ValueError:
        return None


# ── Rent agreement flow ──────────────────────────────────────
# Flow: title → role → start date (year/month/day) → contract duration
#       → currency → amount → due day → monthly reminder → [timing]
#       → yearly increase → summary

RENT_TITLE = "rent_title"                          # Step 1: agreement name
RENT_ROLE = "rent_role"                            # Step 2: tenant / landlord
RENT_START_YEAR = "rent_start_year"                # Step 3
RENT_START_MONTH = "rent_start_month"              # Step 4
RENT_START_DAY = "rent_start_day"                  # Step 5
RENT_CONTRACT_DURATION = "rent_contract_duration"  # Step 6: 1/2/3 years or other
RENT_CONTRACT_DURATION_CUSTOM = "rent_contract_duration_custom"  # Step 6b: typed years
RENT_CURRENCY = "rent_currency"                    # Step 7
RENT_AMOUNT = "rent_amount"                        # Step 8
RENT_DUE_DAY = "rent_due_day"                      # Step 9
RENT_MONTHLY_REMINDER = "rent_monthly_reminder"    # Step 10: yes / no
RENT_REMINDER_TIMING = "rent_reminder_timing"      # Step 11: only after "yes"
RENT_YEARLY_INCREASE = "rent_yearly_increase"      # Step 12: yes / no
RENT_SUMMARY = "rent_summary"                      # Final confirmation

# ── Custom agreement flow ────────────────────────────────────
# Flow: title → description → (reminder title → date → amount → [currency]
#       → timing → list)* → summary

CUSTOM_TITLE = "custom_title"                      # Step 1
CUSTOM_DESCRIPTION = "custom_description"          # Step 2 (skippable)
CUSTOM_REMINDER_TITLE = "custom_reminder_title"    # Step 3: loop entry
CUSTOM_REMINDER_DATE = "custom_reminder_date"      # calendar or DD.MM.YYYY
CUSTOM_REMINDER_AMOUNT = "custom_reminder_amount"  # skippable
CUSTOM_CURRENCY = "custom_currency"                # asked once per agreement
CUSTOM_REMINDER_TIMING = "custom_reminder_timing"
CUSTOM_REMINDER_LIST = "custom_reminder_list"      # add another / finish
CUSTOM_SUMMARY = "custom_summary"                  # Final confirmation

# ── Edit flow ────────────────────────────────────────────────

EDIT_TITLE = "edit_title"
EDIT_AMOUNT = "edit_amount"
EDIT_DUE_DAY = "edit_due_day"
EDIT_DESCRIPTION = "edit_description"
EDIT_REMINDER_TIMING = "edit_reminder_timing"

EDIT_FIELD_STATES: dict[str, str] = {
    "title": EDIT_TITLE,
    "amount": EDIT_AMOUNT,
    "due_day": EDIT_DUE_DAY,
    "description": EDIT_DESCRIPTION,
    "timing": EDIT_REMINDER_TIMING,
}

# Fields flipped by a single press, no conversation needed
TOGGLE_FIELDS: tuple[str, ...] = ("monthly", "yearly")
