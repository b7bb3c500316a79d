# ==== BUSINESS LOGIC PACKAGE ==== #

"""
Business logic package for onramp domain rules.

This package contains the reason codes, order lifecycle enumerations and the
typed merchant configuration that parameterizes every order.
"""
