"""Onramp engine services: validation, pricing, fees, lifecycle and settlement."""
