# dashboard.py
import os
import streamlit as st
import pandas as pd
from sqlalchemy import create_engine, text

st.set_page_config(page_title="TMS Operations Dashboard", layout="wide")

st.title("TMS Operations Dashboard")

db_url = os.getenv("DATABASE_URL")
if not db_url:
    st.error("DATABASE_URL is not set")
    st.stop()

engine = create_engine(db_url, pool_pre_ping=True)

with engine.begin() as conn:
    tenants = [r[0] for r in conn.execute(text("SELECT DISTINCT tenant_id FROM loads ORDER BY tenant_id"))]

if not tenants:
    st.info("No loads yet. Seed a tenant with `python -m tms_api.seed`.")
    st.stop()

tenant = st.sidebar.selectbox("Tenant", tenants)

with engine.begin() as conn:
    rows = conn.execute(text("""
        SELECT l.load_number, l.status, l.equipment_type, l.carrier_rate, l.total_cost,
               o.total_charges, c.legal_name AS carrier, l.eta, l.last_tracking_update, l.created_at
        FROM loads l
        LEFT JOIN orders o ON o.id = l.order_id
        LEFT JOIN carriers c ON c.id = l.carrier_id
        WHERE l.tenant_id = :tenant AND l.deleted_at IS NULL
        ORDER BY l.created_at DESC
        LIMIT 500
    """), {"tenant": tenant}).fetchall()

df = pd.DataFrame(rows, columns=["load_number", "status", "equipment_type", "carrier_rate", "total_cost",
                                 "total_charges", "carrier", "eta", "last_tracking_update", "created_at"])
for col in ("carrier_rate", "total_cost", "total_charges"):
    df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)

revenue = df["total_charges"].sum()
cost = df["carrier_rate"].sum()
c1, c2, c3, c4 = st.columns(4)
c1.metric("Loads", len(df))
c2.metric("Unassigned", int(df["carrier"].isna().sum()))
c3.metric("Revenue", f"${revenue:,.0f}")
c4.metric("Margin", f"{(revenue - cost) / revenue * 100:.1f}%" if revenue else "0.0%")

st.subheader("Loads by status")
st.bar_chart(df.groupby("status").size().rename("loads"))

st.subheader("Recent Loads")
# simple filters
status = st.multiselect("Status filter", options=sorted(df["status"].unique().tolist()))
shown = df[df["status"].isin(status)] if status else df
st.dataframe(shown, use_container_width=True)
