"""Ledger, storage and auction program"""
