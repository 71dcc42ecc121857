# Import every model here so Alembic autogenerate can discover them
# and so Base.metadata.create_all() works in tests.

from roommatch.models.embedding import Embedding, EntityKind  # noqa: F401
from roommatch.models.seeker import SeekerProfile             # noqa: F401
from roommatch.models.listing import Listing                  # noqa: F401
