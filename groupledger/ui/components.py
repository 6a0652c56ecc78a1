"""
components.py - reusable Streamlit components / forms / displays

This module contains the UI helpers used by the dashboard:
 - display_group_form / display_member_manager
 - display_expense_form (shared by add and edit)
 - display_expense_list / display_balances / display_manage_expenses

Forms only collect input and build an ExpenseDraft. Every rule (positive
amount, known payer, exact shares that add up) is enforced by the ledger;
its ValidationErrors are rendered next to the form via show_ledger_error().
"""

import datetime
from decimal import Decimal
from io import BytesIO
from typing import Callable, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from groupledger.errors import LedgerError, LedgerInvariantError, ValidationError
from groupledger.models import EqualSplit, ExactSplit, Expense, ExpenseDraft, Group
from groupledger.money import format_amount
from groupledger.service import GroupLedgerService, GroupSummary
from groupledger.settings import get_logger

logger = get_logger(__name__)

FIELD_LABELS = {
    "amount": "Amount",
    "paid_by": "Paid by",
    "split": "Split",
}

POSITIVE_COLOR = "#2e7d32"
NEGATIVE_COLOR = "#c62828"


def _trigger_rerun():
    if hasattr(st, "rerun"):
        st.rerun()
    else:
        st.experimental_rerun()


def show_ledger_error(exc: LedgerError):
    """Inline message for recoverable errors, generic failure for defects."""
    if isinstance(exc, LedgerInvariantError):
        logger.error("Ledger invariant violated while rendering: %s", exc)
        st.error("Something went wrong computing balances. The error has been logged.")
    elif isinstance(exc, ValidationError):
        label = FIELD_LABELS.get(exc.field, "Expense")
        st.error(f"{label}: {exc}")
    else:
        st.error(str(exc))


def _member_label(group: Group) -> Callable[[str], str]:
    names = {m.id: m.display_name for m in group.members}
    return lambda mid: names.get(mid, mid)


def display_group_form(on_submit: Callable[[str, List[str], str], None], currencies: List[str]):
    """Create a group with an initial, comma separated member list."""
    st.header("New Group")
    with st.form(key="group_form"):
        name = st.text_input("Group name")
        members_raw = st.text_input("Members (comma separated)")
        currency = st.selectbox("Currency", options=currencies)
        if st.form_submit_button("Create group"):
            members = [m.strip() for m in members_raw.split(",") if m.strip()]
            on_submit(name, members, currency)


def display_member_manager(service: GroupLedgerService, group: Group):
    st.header(f"Members of {group.name}")
    if group.members:
        for m in group.members:
            st.write(f"- {m.display_name} ({m.id})")
    else:
        st.info("This group has no members yet.")

    with st.form(key=f"add_member_{group.id}"):
        new_name = st.text_input("New member name")
        if st.form_submit_button("Add member"):
            try:
                member = service.add_member(group.id, new_name)
                st.success(f"Added {member.display_name}.")
                _trigger_rerun()
            except LedgerError as exc:
                show_ledger_error(exc)

    if group.members:
        label = _member_label(group)
        target = st.selectbox("Remove member", options=group.member_ids(), format_func=label)
        if st.button("Remove member"):
            try:
                service.remove_member(group.id, target)
                st.success(f"Removed {label(target)}.")
                _trigger_rerun()
            except LedgerError as exc:
                show_ledger_error(exc)


def display_expense_form(
    group: Group,
    on_submit: Callable[[ExpenseDraft], None],
    categories: List[str],
    expense: Optional[Expense] = None,
):
    """
    Add (expense=None) or edit form. The draft handed to on_submit is always
    complete; editing resubmits every field.
    """
    st.header("Edit Expense" if expense else "Add Expense")
    if not group.members:
        st.info("Add members to the group before recording expenses.")
        return

    digits = group.minor_digits
    step = float(Decimal(1).scaleb(-digits))
    fmt = f"%.{digits}f"
    member_ids = group.member_ids()
    label = _member_label(group)
    key = f"expense_form_{group.id}_{expense.id if expense else 'new'}"

    with st.form(key=key):
        amount = st.number_input(
            f"Amount ({group.currency})", min_value=0.0, step=step, format=fmt,
            value=float(expense.amount) if expense else 0.0,
        )
        payer_idx = member_ids.index(expense.paid_by) if expense and expense.paid_by in member_ids else 0
        paid_by = st.selectbox("Paid by", options=member_ids, index=payer_idx, format_func=label)
        cat_value = expense.category if expense else categories[0]
        cat_options = categories if cat_value in categories else categories + [cat_value]
        category = st.selectbox("Category", options=cat_options, index=cat_options.index(cat_value))
        try:
            date_prefill = datetime.date.fromisoformat(expense.date) if expense and expense.date else datetime.date.today()
        except ValueError:
            date_prefill = datetime.date.today()
        date_val = st.date_input("Date", value=date_prefill)
        description = st.text_input("Description (optional)", value=expense.description if expense else "")

        is_exact = bool(expense) and isinstance(expense.split, ExactSplit)
        split_mode = st.radio("Split mode", options=["Equal split", "Exact amounts"], index=1 if is_exact else 0)
        if split_mode == "Equal split":
            default_participants = (
                [m for m in expense.split.participant_ids() if m in member_ids]
                if expense and not is_exact else member_ids
            )
            participants = st.multiselect(
                "Participants", options=member_ids, default=default_participants, format_func=label,
            )
        else:
            st.write("Enter what each member owes (must add up to the amount):")
            exact: Dict[str, float] = {}
            for mid in member_ids:
                prefill = float(expense.split.shares.get(mid, 0)) if is_exact else 0.0
                exact[mid] = st.number_input(
                    f"Share for {label(mid)}", min_value=0.0, step=step, format=fmt,
                    value=prefill, key=f"{key}_share_{mid}",
                )

        if st.form_submit_button("Save changes" if expense else "Add Expense"):
            if split_mode == "Equal split":
                # everyone selected means "all members", so later members are
                # handled the same way as in a fresh equal split
                split = EqualSplit() if set(participants) == set(member_ids) else EqualSplit(tuple(participants))
            else:
                split = ExactSplit({mid: f"{v:.{digits}f}" for mid, v in exact.items()})
            on_submit(
                ExpenseDraft(
                    amount=f"{amount:.{digits}f}",
                    paid_by=paid_by,
                    split=split,
                    description=description.strip(),
                    date=date_val.isoformat(),
                    category=category,
                )
            )


def expenses_frame(group: Group, expenses: List[Expense]) -> pd.DataFrame:
    """Flat table of expenses; shares are spelled out per member."""
    label = _member_label(group)
    rows = []
    for e in expenses:
        if isinstance(e.split, ExactSplit):
            shares = ", ".join(f"{label(k)}: {v}" for k, v in e.split.shares.items() if Decimal(v) != 0)
        else:
            shares = "equal: " + ", ".join(label(k) for k in e.split.participant_ids())
        rows.append({
            "id": e.id,
            "date": e.date,
            "category": e.category,
            "description": e.description,
            "amount": float(e.amount),
            "paid_by": label(e.paid_by),
            "split": shares,
        })
    return pd.DataFrame(rows, columns=["id", "date", "category", "description", "amount", "paid_by", "split"])


def balances_frame(group: Group, summary: GroupSummary) -> pd.DataFrame:
    """One row per member in display order; status reads as 'is owed' / 'owes'."""
    rows = []
    for m in group.members:
        bal = summary.balance.get(m.id, Decimal(0))
        rows.append({
            "member": m.display_name,
            "paid": float(summary.paid.get(m.id, 0)),
            "owed": float(summary.owed.get(m.id, 0)),
            "balance": float(bal),
            "status": "is owed" if bal > 0 else ("owes" if bal < 0 else "settled"),
        })
    return pd.DataFrame(rows, columns=["member", "paid", "owed", "balance", "status"])


def display_expense_list(group: Group, expenses: List[Expense]):
    """Render expenses as a table and offer an XLSX export."""
    st.header(f"Expenses of {group.name}")
    if not expenses:
        st.write("No expenses recorded.")
        return
    df = expenses_frame(group, expenses)
    st.dataframe(df.style.format({"amount": f"{{:.{group.minor_digits}f}}"}), use_container_width=True)
    total = sum((e.amount for e in expenses), Decimal(0))
    st.markdown(f"**Total: {format_amount(total, group.currency, group.minor_digits)}**")

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="expenses")
    st.download_button(
        label="Download as XLSX",
        data=buffer.getvalue(),
        file_name=f"{group.name}_expenses.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


def display_balances(group: Group, summary: GroupSummary):
    """Balances table plus a bar chart: green bars are owed, red bars owe."""
    st.header(f"Balances of {group.name}")
    st.markdown(f"**Total spent: {format_amount(summary.total_expense, group.currency, group.minor_digits)}**")
    if not group.members:
        st.write("No balances to display.")
        return
    df = balances_frame(group, summary)
    fmt = f"{{:.{group.minor_digits}f}}"
    st.dataframe(df.style.format({"paid": fmt, "owed": fmt, "balance": fmt}), use_container_width=True)

    chart = alt.Chart(df).mark_bar().encode(
        x=alt.X("member:N", title="Member", sort=list(df["member"])),
        y=alt.Y("balance:Q", title=f"Balance ({group.currency})"),
        color=alt.condition(alt.datum.balance >= 0, alt.value(POSITIVE_COLOR), alt.value(NEGATIVE_COLOR)),
        tooltip=[
            alt.Tooltip("member:N", title="Member"),
            alt.Tooltip("balance:Q", title="Balance", format=f".{group.minor_digits}f"),
            alt.Tooltip("status:N", title="Status"),
        ],
    )
    st.altair_chart(chart, use_container_width=True)


def display_manage_expenses(service: GroupLedgerService, group: Group, categories: List[str]):
    """Select an expense, then edit it in full or delete it."""
    st.header("Edit / Delete Expense")
    exs = service.list_expenses(group.id)
    if not exs:
        st.info("No expenses recorded.")
        return

    options = {f"#{e.id} {e.description or e.category} {e.amount} {e.date}": e.id for e in exs}
    sel_label = st.selectbox("Select expense", options=list(options.keys()))
    expense = service.get_expense(group.id, options[sel_label])

    def on_submit(draft: ExpenseDraft):
        try:
            service.update_expense(group.id, expense.id, draft)
            st.success("Expense updated.")
            _trigger_rerun()
        except LedgerError as exc:
            show_ledger_error(exc)

    display_expense_form(group, on_submit, categories, expense=expense)

    # Delete UI (separate to avoid accidental deletes)
    st.markdown("---")
    delete_confirm = st.checkbox("I confirm I want to delete this expense")
    if st.button("Delete expense") and delete_confirm:
        try:
            service.remove_expense(group.id, expense.id)
            st.success("Expense deleted.")
            _trigger_rerun()
        except LedgerError as exc:
            show_ledger_error(exc)
