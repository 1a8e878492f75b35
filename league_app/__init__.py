"""
League administration backend: household identity resolution and import reconciliation.
"""
