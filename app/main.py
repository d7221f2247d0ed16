import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date

import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from ledger.config import configure_logging, get_settings
from ledger.domain import (
    EXPENSE_CATEGORY_LABELS,
    SUBSCRIPTION_LABELS,
    ExpenseCategory,
    SubscriptionType,
    default_expense_description,
    default_income_description,
    subscription_price,
)
from ledger.events import EventBus, LEDGER_RECOVERED, TRANSACTION_ADDED, TRANSACTION_DELETED
from ledger.stats import monthly_totals, transactions_frame
from ledger.storage import FileStore
from ledger.store import LedgerStore

st.set_page_config(page_title="Finances", layout="wide")


def notify(event, payload):
    st.session_state.setdefault("notices", []).append(f"[{event.ts[11:19]}] {event.name}")


@st.cache_resource
def build_store() -> LedgerStore:
    settings = get_settings()
    configure_logging(settings)
    bus = EventBus()
    store = LedgerStore(FileStore(settings.data_dir), settings=settings, bus=bus)
    bus.subscribe(LEDGER_RECOVERED, lambda e, p: st.session_state.setdefault("recovered", p))
    bus.subscribe(TRANSACTION_ADDED, notify)
    bus.subscribe(TRANSACTION_DELETED, notify)
    store.load()
    return store


if "notices" not in st.session_state:
    st.session_state.notices = []

store = build_store()

accounts = store.accounts
# keyed by id: two accounts may share a name and bank
account_labels = {a.id: f"{a.name} ({a.bank})" for a in accounts}


def money(value, currency="сом"):
    return f"{float(value):,.2f} {currency}"


if st.session_state.get("recovered"):
    st.warning("Saved finance data could not be read and was reset to defaults.")

menu = st.sidebar.radio(
    "Menu",
    ["🏠 Overview", "➕ Income", "➖ Expense", "🧾 Transactions", "💳 Accounts"]
)

if menu == "🏠 Overview":
    stats = store.get_stats()
    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Income", money(stats.total_income))
    with k2:
        st.metric("Expenses", money(stats.total_expense))
    with k3:
        st.metric("Tax paid", money(stats.tax_amount), delta=f"{float(stats.tax_rate) * 100:.0f}% ≈ {money(stats.calculated_tax)}", delta_color="off")
    with k4:
        st.metric("Net profit", money(stats.net_profit))

    col_left, col_right = st.columns(2)
    with col_left:
        subs = pd.DataFrame([
            {"Plan": SUBSCRIPTION_LABELS[kind], "Count": b.count, "Total": float(b.total)}
            for kind, b in stats.subscription_breakdown.items()
        ])
        if subs["Total"].sum() > 0:
            fig_subs = px.pie(subs, values="Total", names="Plan", title="Income by subscription")
            st.plotly_chart(fig_subs, use_container_width=True)
        st.table(subs)
    with col_right:
        exp = pd.DataFrame([
            {"Category": EXPENSE_CATEGORY_LABELS[cat], "Total": float(total)}
            for cat, total in stats.expense_breakdown.items()
        ])
        fig_exp = px.bar(exp, x="Category", y="Total", title="Expenses by category", template="plotly_dark")
        st.plotly_chart(fig_exp, use_container_width=True)

    monthly = monthly_totals(store.transactions)
    if not monthly.empty:
        fig_ts = go.Figure()
        fig_ts.add_trace(go.Scatter(x=monthly["month"], y=monthly["income"], mode="lines+markers", name="Income"))
        fig_ts.add_trace(go.Scatter(x=monthly["month"], y=monthly["expense"], mode="lines+markers", name="Expense"))
        fig_ts.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
        st.plotly_chart(fig_ts, use_container_width=True)
    else:
        st.info("No transactions yet.")

    if st.session_state.notices:
        with st.expander("Recent activity"):
            for line in reversed(st.session_state.notices[-10:]):
                st.write(line)

elif menu == "➕ Income":
    st.title("➕ Add income")
    if not accounts:
        st.info("Create an account first.")
    else:
        kind = st.radio(
            "Subscription",
            list(SubscriptionType),
            format_func=lambda k: SUBSCRIPTION_LABELS[k],
            horizontal=True,
        )
        with st.form("income_form", clear_on_submit=True):
            custom_amount = None
            if kind is SubscriptionType.CUSTOM:
                custom_amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            customer = st.text_input("Customer name (optional)")
            description = st.text_input("Description (optional)")
            tx_date = st.date_input("Date", value=date.today())
            account = st.selectbox("Account", list(account_labels), format_func=account_labels.get)
            amount = subscription_price(kind, custom_amount)
            st.caption(f"Amount: +{money(amount)} · tax {float(store.settings.tax_rate) * 100:.0f}%: "
                       f"{money(amount * store.settings.tax_rate)}")
            submitted = st.form_submit_button("Add income")

            if submitted:
                if amount <= 0:
                    st.error("Amount must be greater than zero")
                else:
                    store.add_transaction("income", {
                        "description": description or default_income_description(kind, customer),
                        "amount": amount,
                        "date": tx_date.isoformat(),
                        "account_id": account,
                        "subscription_type": kind,
                    })
                    st.success("✅ Income added!")
                    st.rerun()

elif menu == "➖ Expense":
    st.title("➖ Add expense")
    if not accounts:
        st.info("Create an account first.")
    else:
        with st.form("expense_form", clear_on_submit=True):
            category = st.selectbox("Category", list(ExpenseCategory), format_func=lambda c: EXPENSE_CATEGORY_LABELS[c])
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            description = st.text_input("Description (optional)")
            tx_date = st.date_input("Date", value=date.today())
            account = st.selectbox("Account", list(account_labels), format_func=account_labels.get)
            submitted = st.form_submit_button("Add expense")

            if submitted:
                selected = store.find_account(account).get_or_else(None)
                if amount <= 0:
                    st.error("Amount must be greater than zero")
                elif selected is not None and amount > selected.balance:
                    st.error(f"Insufficient funds: balance is {money(selected.balance, selected.currency)}")
                else:
                    store.add_transaction("expense", {
                        "description": description or default_expense_description(category),
                        "amount": amount,
                        "date": tx_date.isoformat(),
                        "account_id": account,
                        "category": category,
                    })
                    st.success("✅ Expense added!")
                    st.rerun()

elif menu == "🧾 Transactions":
    st.title("🧾 Transactions")

    col1, col2, col3 = st.columns(3)
    with col1:
        kind = st.selectbox("Type", ["all", "income", "expense"])
    with col2:
        date_from = st.date_input("From", value=None)
    with col3:
        date_to = st.date_input("To", value=None)

    filtered = store.get_filtered_transactions(
        kind,
        date_from.isoformat() if date_from else None,
        date_to.isoformat() if date_to else None,
    )
    df = transactions_frame(filtered)
    if not df.empty:
        st.dataframe(df.drop(columns=["signed_amount"]), use_container_width=True)
        csv = df.to_csv(index=False)
        st.download_button("⬇ Download CSV", csv, file_name="transactions.csv", mime="text/csv")

        with st.form("delete_form"):
            labels = {t.id: f"{t.date} · {t.description} · {money(t.signed_amount)}" for t in filtered}
            choice = st.selectbox("Transaction", list(labels), format_func=labels.get)
            if st.form_submit_button("🗑 Delete"):
                store.delete_transaction(choice)
                st.rerun()
    else:
        st.info("No transactions match the selected filters")

elif menu == "💳 Accounts":
    st.title("💳 Accounts")

    if accounts:
        account_cols = st.columns(len(accounts))
        for col, acc in zip(account_cols, accounts):
            with col:
                st.metric(f"{acc.name}", money(acc.balance, acc.currency), delta=acc.bank, delta_color="off")

    drift = store.reconcile()
    if drift:
        st.caption("Balances differing from the transaction log: " +
                   ", ".join(f"{acc_id}: {float(d):+,.2f}" for acc_id, d in drift.items()))

    st.subheader("Add account")
    with st.form("account_form", clear_on_submit=True):
        name = st.text_input("Name")
        bank = st.text_input("Bank")
        balance = st.number_input("Starting balance", value=0.0, step=100.0, format="%.2f")
        currency = st.text_input("Currency", value=store.settings.default_currency)
        if st.form_submit_button("Add account"):
            if name.strip() and bank.strip():
                store.add_account({"name": name.strip(), "bank": bank.strip(), "balance": balance, "currency": currency})
                st.rerun()
            else:
                st.error("Name and bank are required")

    if accounts:
        st.subheader("Edit or delete")
        selected = st.selectbox("Account", list(account_labels), format_func=account_labels.get)
        acc = store.find_account(selected).get_or_else(None)
        with st.form("edit_account_form"):
            new_name = st.text_input("Name", value=acc.name)
            new_bank = st.text_input("Bank", value=acc.bank)
            save, delete = st.columns(2)
            with save:
                do_save = st.form_submit_button("💾 Save")
            with delete:
                do_delete = st.form_submit_button("🗑 Delete")

        if do_save:
            store.update_account(acc.id, name=new_name, bank=new_bank)
            st.rerun()
        if do_delete:
            result = store.delete_account(acc.id)
            if result.is_left():
                st.error(result.get_error()["message"])
            else:
                st.rerun()
