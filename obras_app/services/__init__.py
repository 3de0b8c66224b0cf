"""
Business services: session lifecycle, item reconciliation, financial
summary, RDO workflow and password reset codes.
"""
