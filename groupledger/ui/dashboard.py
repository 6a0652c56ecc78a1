"""
dashboard.py - Streamlit UI entrypoint and orchestration

This module wires the UI components (groupledger.ui.components) with the
ledger (groupledger.service). main() builds the sidebar (storage status,
group picker, menu) and routes actions to components and service methods.

Design notes:
 - Keep the dashboard responsible only for UI orchestration and presentation.
 - All persistence and business rules live in groupledger.service.
 - Recoverable ledger errors are shown inline; anything else propagates.
"""

import streamlit as st

from groupledger import settings
from groupledger.errors import LedgerError
from groupledger.models import ExpenseDraft
from groupledger.service import GroupLedgerService
from groupledger.storage import default_store
from groupledger.ui import components

CURRENCIES = ["EUR", "USD", "GBP", "CHF", "INR"]

CATEGORIES = [
    "general",
    "Groceries",
    "Eating out",
    "Transport",
    "Accommodation",
    "Utilities",
    "Entertainment",
    "Gifts",
]


def _currency_options():
    if settings.DEFAULT_CURRENCY in CURRENCIES:
        return CURRENCIES
    return [settings.DEFAULT_CURRENCY] + CURRENCIES


def main():
    """
    Streamlit page: sidebar menu controls which view is shown.
    Actions:
      - New Group: create a group with its initial members
      - Members: add members, remove members without history
      - Add Expense / Edit Expense: full-record forms
      - List Expenses: optional year/month filters, XLSX export
      - Balances: per-member paid / owed / balance with chart
      - Delete Group: with single-button confirmation
    """
    st.title("Group Expense Ledger")
    service = GroupLedgerService(default_store())
    backend_name, backend_msg = service.storage_status()
    if backend_name == "google_sheets":
        st.sidebar.success(backend_msg)
    else:
        st.sidebar.warning(backend_msg)
        st.sidebar.caption(
            "For cloud persistence, set GOOGLE_SHEET_ID and "
            "GOOGLE_SERVICE_ACCOUNT_JSON in Streamlit app Secrets."
        )

    groups = service.list_groups()
    menu = ["New Group"]
    group = None
    if groups:
        names = {g.id: g.name for g in groups}
        group_id = st.sidebar.selectbox("Group", options=list(names), format_func=lambda gid: names[gid])
        group = service.get_group(group_id)
        menu += ["Add Expense", "List Expenses", "Balances", "Members", "Edit Expense", "Delete Group"]
    choice = st.sidebar.selectbox("Select an option", menu)

    if choice == "New Group":
        def on_create(name, members, currency):
            try:
                created = service.create_group(name, members, currency=currency)
                st.success(f"Group '{created.name}' created.")
            except LedgerError as exc:
                components.show_ledger_error(exc)

        components.display_group_form(on_create, _currency_options())

    elif choice == "Add Expense":
        def on_submit(draft: ExpenseDraft):
            try:
                expense = service.add_expense(group.id, draft)
                st.success(f"Expense #{expense.id} added.")
            except LedgerError as exc:
                components.show_ledger_error(exc)

        components.display_expense_form(group, on_submit, CATEGORIES)

    elif choice == "List Expenses":
        years, months_map = service.available_periods(group.id)
        col1, col2 = st.columns(2)
        with col1:
            year_sel = st.selectbox("Filter year (optional)", options=[None] + years, index=0)
        with col2:
            month_options = months_map.get(year_sel, []) if year_sel else []
            month_sel = st.selectbox("Filter month (optional)", options=[None] + month_options, index=0)
        if year_sel is None:
            expenses = service.list_expenses(group.id)
        else:
            expenses = service.list_expenses(group.id, year=year_sel, month=month_sel)
        components.display_expense_list(group, expenses)

    elif choice == "Balances":
        try:
            components.display_balances(group, service.summary(group.id))
        except LedgerError as exc:
            components.show_ledger_error(exc)

    elif choice == "Members":
        components.display_member_manager(service, group)

    elif choice == "Edit Expense":
        components.display_manage_expenses(service, group, CATEGORIES)

    elif choice == "Delete Group":
        st.write(f"Delete '{group.name}' and all of its expenses?")
        if st.button("Confirm Delete"):
            service.delete_group(group.id)
            st.success("Group deleted.")


if __name__ == "__main__":
    main()
