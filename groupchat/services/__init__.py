# Services package.
#
# Each module exposes async functions holding the business rules for one
# aggregate:
#
#   user_service          : identity-gated user fields + profile update
#   group_service         : group lifecycle, feed and icon resolution
#   message_service       : message creation (+ fan-out) and from/to
#   subscription_service  : subscription authorization
#
# Service functions take a ``Store`` and an ``AuthContext`` as their
# first arguments; the router layer decides the transaction boundary
# through the ``get_store`` dependency.
