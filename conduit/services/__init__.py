# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   user_service     registration, login, current-user read and update
#   profile_service  public profiles and follow/unfollow
#   article_service  listings, feed, CRUD, favorites and projections
#   comment_service  list/add/delete comments on an article
#   tag_service      tag listing by usage
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
