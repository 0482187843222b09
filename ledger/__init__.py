"""Small-business double-entry ledger service"""
