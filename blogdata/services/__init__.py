# Services package.
#
# Each module exposes a focused set of async functions for a single kind
# of stored entity:
#
#   article_service: CRUD + change feed for articles
#   comment_service: CommentTree, reply/insert, cascading delete
#   profile_service: avatar data for the profile widget
#
# All service functions accept a TransportSelector as their first argument
# so the caller decides which selector (and therefore which session-wide
# transport decision) they run against.
