"""
Dealbook - Streamlit Application
Record USDT buy/sell deals, browse them by month and track PnL.
"""

import logging
from datetime import date
from urllib.parse import urlencode

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from config import get_settings
from db_engine import init_db
from models.deal import as_utc
from errors import AuthorizationError, DealbookError, DealNotFoundError, DealValidationError, RemoteOperationError
from services import (
    AuthController,
    AuthState,
    DealService,
    LocalSessionProvider,
    deal_profit,
    format_month_key,
    month_label,
    months_for_preset,
)
from services.common import resolve_timezone

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Configure Streamlit page
st.set_page_config(
    page_title="Dealbook - USDT Deals",
    page_icon="💱",
    layout="wide"
)

# Initialize database
init_db()

DISPLAY_TZ = resolve_timezone(settings.app_timezone)

PRESET_LABELS = {
    "1m": "This month",
    "3m": "3 months",
    "6m": "6 months",
    "custom": "Pick a month",
}


# ==================== SESSION STATE ====================
def current_url() -> str:
    """Rebuild the query string Streamlit received, for recovery-link detection."""
    params = {key: st.query_params[key] for key in st.query_params.keys()}
    return f"?{urlencode(params)}" if params else ""


if "auth" not in st.session_state:
    provider = LocalSessionProvider()
    auth = AuthController(provider)
    url = current_url()
    result = auth.start(url)
    if url:
        st.query_params.clear()
    st.session_state.provider = provider
    st.session_state.auth = auth
    st.session_state.deal_service = DealService(auth)
    logger.info(f"New browser session in state {result.value}")

if "auth_mode" not in st.session_state:
    st.session_state.auth_mode = "login"

if "preset" not in st.session_state:
    st.session_state.preset = "1m"

if "custom_month" not in st.session_state:
    st.session_state.custom_month = None


# ==================== HELPER FUNCTIONS ====================
def format_deal_date(value) -> str:
    local = as_utc(value).astimezone(DISPLAY_TZ)
    return local.strftime("%Y-%m-%d %H:%M")


def notify_error(error: DealbookError):
    """Show a store or session failure as a transient notification."""
    if isinstance(error, AuthorizationError):
        st.session_state.auth_mode = "login"
        st.toast("Your session has ended. Please sign in again.", icon="🔒")
        st.rerun()
    st.toast(str(error) or "Something went wrong", icon="⚠️")


# ==================== AUTH PAGES ====================
def render_login_page():
    """Render sign-in, registration and password recovery forms."""
    provider = st.session_state.provider
    mode = st.session_state.auth_mode

    st.subheader("🔐 Sign in to Dealbook")

    if mode == "login":
        with st.form("login_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", use_container_width=True)
        if submitted:
            with st.spinner("Signing in..."):
                result = provider.sign_in(email, password)
            if result.ok:
                st.rerun()
            else:
                st.error(f"❌ {result.error}")

        col1, col2 = st.columns(2)
        with col1:
            if st.button("Create an account", use_container_width=True):
                st.session_state.auth_mode = "register"
                st.rerun()
        with col2:
            if st.button("Forgot password?", use_container_width=True):
                st.session_state.auth_mode = "forgot"
                st.rerun()

    elif mode == "register":
        with st.form("register_form"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Register", use_container_width=True)
        if submitted:
            with st.spinner("Creating account..."):
                result = provider.sign_up(email, password)
            if result.ok:
                st.session_state.auth_mode = "login"
                st.success("✅ Account created. You can sign in now.")
            else:
                st.error(f"❌ {result.error}")
        if st.button("Back to sign in"):
            st.session_state.auth_mode = "login"
            st.rerun()

    elif mode == "forgot":
        with st.form("forgot_form"):
            email = st.text_input("Email")
            submitted = st.form_submit_button("Send recovery link", use_container_width=True)
        if submitted:
            if not email:
                st.warning("⚠️ Enter your email")
            else:
                with st.spinner("Sending email..."):
                    result = provider.request_credential_reset(email, settings.password_reset_url)
                if result.ok:
                    st.session_state.auth_mode = "login"
                    st.success("✅ Email sent. Open the link from your inbox.")
                else:
                    st.error(f"❌ {result.error}")
        if st.button("Back to sign in"):
            st.session_state.auth_mode = "login"
            st.rerun()


def render_reset_password():
    """Render the new-password form shown after following a recovery link."""
    st.subheader("🔑 Choose a new password")

    with st.form("reset_form"):
        password = st.text_input("New password", type="password")
        submitted = st.form_submit_button("Save password", use_container_width=True)
    if submitted:
        if not password:
            st.warning("⚠️ Enter a new password")
            return
        with st.spinner("Saving..."):
            result = st.session_state.provider.set_new_credential(password)
        if result.ok:
            st.toast("Password updated", icon="✅")
            st.rerun()
        else:
            st.error(f"❌ {result.error}")


# ==================== NEW DEAL ====================
def render_new_deal_form():
    """Render the new deal form with live buy/sell totals."""
    st.subheader("➕ New Deal")
    service = st.session_state.deal_service

    col1, col2, col3 = st.columns(3)
    with col1:
        usdt = st.number_input("USDT amount", min_value=0.0, step=0.0001, format="%.4f", key="new_usdt")
    with col2:
        buy_commission = st.number_input(
            "Buy commission (%)", min_value=-100.0, max_value=100.0, step=0.1, value=0.0,
            key="new_buy_commission"
        )
    with col3:
        sell_commission = st.number_input(
            "Sell commission (%)", min_value=-100.0, max_value=100.0, step=0.1, value=0.0,
            key="new_sell_commission"
        )

    preview = service.preview(usdt, buy_commission, sell_commission)
    m1, m2, m3 = st.columns(3)
    with m1:
        st.metric("Buy total (USDT)", f"{preview.buy_amount:.4f}")
    with m2:
        st.metric("Sell total (USDT)", f"{preview.sell_amount:.4f}")
    with m3:
        st.metric("Profit", f"{preview.pnl:+.4f}")

    if st.button("Record deal", type="primary", use_container_width=True):
        try:
            with st.spinner("Saving..."):
                service.create_deal(usdt, buy_commission, sell_commission)
            st.toast("Deal saved", icon="✅")
        except DealValidationError as e:
            st.error("❌ USDT amount must be greater than 0 and commissions within ±100%.")
            logger.debug(f"Rejected deal input: {e.errors}")
        except DealbookError as e:
            notify_error(e)


# ==================== DEALS ====================
def render_month_table(month: str, compact: bool):
    """Render one month's deals, its totals and the edit/delete controls."""
    service = st.session_state.deal_service

    try:
        deals = service.list_month(month)
        stats = service.month_stats(month)
    except DealbookError as e:
        notify_error(e)
        return

    with st.container(border=True):
        if not compact:
            st.markdown(f"**Deals for {month_label(month)}**")
        else:
            st.markdown(f"**{month_label(month)}**")

        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Deals", f"{len(deals)}")
        with col2:
            st.metric("PnL", f"{stats.pnl:+.2f}")
        with col3:
            st.metric("Turnover", f"{stats.total:.2f}")

        if not deals:
            st.info(f"No deals in {month_label(month)}.")
            return

        df = pd.DataFrame([
            {
                "ID": deal.id,
                "Date": format_deal_date(deal.deal_date),
                "USDT": deal.usdt,
                "Buy commission (%)": deal.buy_commission,
                "Buy amount": deal.buy_amount,
                "Sell commission (%)": deal.sell_commission,
                "Sell amount": deal.sell_amount,
                "Profit": round(deal_profit(deal), 2),
            }
            for deal in deals
        ])

        def color_profit(val):
            if val > 0:
                return 'color: green'
            elif val < 0:
                return 'color: red'
            return ''

        styled = df.style.map(color_profit, subset=['Profit'])
        st.dataframe(styled, use_container_width=True, hide_index=True)

        with st.expander("✏️ Edit or delete a deal"):
            options = {f"#{d.id} - {format_deal_date(d.deal_date)}": d for d in deals}
            selected = st.selectbox("Deal", options=list(options.keys()), key=f"select_{month}")
            deal = options[selected]
            render_edit_form(deal, month)


def render_edit_form(deal, month: str):
    service = st.session_state.deal_service

    with st.form(f"edit_{month}_{deal.id}"):
        col1, col2 = st.columns(2)
        with col1:
            usdt = st.number_input("USDT", min_value=0.0, value=float(deal.usdt), step=0.0001, format="%.4f")
            buy_commission = st.number_input(
                "Buy commission (%)", min_value=0.0, max_value=100.0, step=0.1,
                value=float(deal.buy_commission)
            )
            buy_amount = st.number_input("Buy amount", min_value=0.0, value=float(deal.buy_amount), format="%.4f")
        with col2:
            sell_commission = st.number_input(
                "Sell commission (%)", min_value=0.0, max_value=100.0, step=0.1,
                value=float(deal.sell_commission)
            )
            sell_amount = st.number_input("Sell amount", min_value=0.0, value=float(deal.sell_amount), format="%.4f")

        save = st.form_submit_button("Save")

    if save:
        try:
            service.update_deal(
                deal.id,
                usdt=usdt,
                buy_commission=buy_commission,
                buy_amount=buy_amount,
                sell_commission=sell_commission,
                sell_amount=sell_amount
            )
            st.toast("Deal updated", icon="✅")
            st.rerun()
        except DealValidationError as e:
            st.error(f"❌ {e}")
        except DealbookError as e:
            notify_error(e)

    confirm = st.checkbox(
        f"Yes, delete the deal from {format_deal_date(deal.deal_date)}",
        key=f"confirm_delete_{month}_{deal.id}"
    )
    if st.button("🗑️ Delete", disabled=not confirm, key=f"delete_{month}_{deal.id}"):
        try:
            service.delete_deal(deal.id)
            st.toast("Deal deleted", icon="✅")
            st.rerun()
        except (DealNotFoundError, RemoteOperationError, AuthorizationError) as e:
            notify_error(e)


def render_deals_page():
    """Render the period filters and one table per month."""
    st.subheader("📒 Deals")

    col1, col2 = st.columns([3, 2])
    with col1:
        preset = st.radio(
            "Period",
            options=list(PRESET_LABELS.keys()),
            format_func=lambda p: PRESET_LABELS[p],
            horizontal=True,
            key="preset"
        )
    with col2:
        if preset == "custom":
            picked = st.date_input("Month", value=date.today(), key="custom_month_date")
            st.session_state.custom_month = format_month_key(picked)

    months = months_for_preset(preset, st.session_state.custom_month)
    for month in months:
        render_month_table(month, compact=preset != "1m")


# ==================== MAIN APP ====================
def main():
    """Main application entry point."""
    st.title("💱 Dealbook")
    st.markdown("*USDT exchange deals and monthly PnL*")

    auth: AuthController = st.session_state.auth
    # picks up an expired session before anything renders
    st.session_state.provider.get_current_session()

    if auth.state is AuthState.PASSWORD_RECOVERY:
        render_reset_password()
        return

    if not auth.can_query:
        render_login_page()
        return

    st.sidebar.markdown(f"Signed in as **{auth.email}**")
    if st.sidebar.button("Sign out", use_container_width=True):
        st.session_state.provider.sign_out()
        st.rerun()

    tab1, tab2 = st.tabs(["📒 Deals", "➕ New Deal"])

    with tab1:
        render_deals_page()

    with tab2:
        render_new_deal_form()


if __name__ == "__main__":
    main()
