"""
HTTP routers. ``mapping`` exposes the tenant data mapping endpoints.
"""
