"""Recharge code inventory and reminder service."""
