"""
tenant_authz.db.repositories

Repository package.

Responsibilities:
- Group data-access repositories for the credential and policy stores.
"""

# Package marker; repositories are imported directly from submodules.


# --- Module Notes -----------------------------------------------------------
# Repositories stay thin; transactions, validation and change
# notification belong to the stores/services that own them.
