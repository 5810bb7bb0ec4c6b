"""
Identity service: credential registration, login and token issuance.
"""
