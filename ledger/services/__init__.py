"""Ledger services"""
