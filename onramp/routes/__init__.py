# ==== ROUTES PACKAGE ==== #

"""
Routes package for API endpoints.

Contains the merchant onramp API and the liquidity-provider webhook
channels, plus the dependency providers they share.
"""
