"""EventScope helper package.

Architecture: Streamlit pages → eventscope.* helpers → eventscope.db →
eventscope.queries → Supabase REST/RPC API. The FastAPI service in ``api/``
reuses ``eventscope.queries`` directly.
"""
