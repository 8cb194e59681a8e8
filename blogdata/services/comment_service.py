"""
Comment service: nested comments stored as one flat collection.

Every comment lives directly under the comments path, keyed by the
store-generated push key (``Comment.external_key``); nesting is expressed
only through ``parent_id``.  ``CommentTree`` turns one snapshot of that
collection into a parent -> children index, which is rebuilt on every
refresh rather than patched.

Design notes
------------
- New comments are pushed and then shown through the next subscription
  snapshot; nothing is inserted into a tree locally.
- Replies are accepted only while the target sits above
  ``MAX_NESTING_LEVEL``.  Older data may already be deeper; it is still
  displayed but offers no reply.
- Cascading delete walks the index with an explicit stack and no depth
  bound, then issues one delete per key.  Deletes are best-effort and not
  transactional: a failure on one key is logged and the rest are still
  attempted.
"""
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Iterable

from pydantic import ValidationError

from blogdata.config import settings
from blogdata.errors import TransportError, TreeIntegrityError
from blogdata.ids import generate_id
from blogdata.rate_limiter import RateLimiter
from blogdata.schemas import CascadeDeleteResult, Comment, CommentCreate, RenderedComment
from blogdata.transport import TransportSelector

logger = logging.getLogger(__name__)

# Index key shared by all root comments.
ROOT_KEY = ""


def _parent_key(parent_id: str | None) -> str:
    return ROOT_KEY if parent_id is None else str(parent_id)


def build_index(comments: Iterable[Comment]) -> dict[str, list[str]]:
    """Group comment ids by parent id, preserving source order within each group."""
    index: dict[str, list[str]] = {}
    for comment in comments:
        index.setdefault(_parent_key(comment.parent_id), []).append(comment.id)
    return index


class CommentTree:
    def __init__(self, comments: Iterable[Comment], max_nesting_level: int | None = None) -> None:
        self.comments = list(comments)
        self.max_nesting_level = (
            settings.MAX_NESTING_LEVEL if max_nesting_level is None else max_nesting_level
        )
        self._by_id: dict[str, Comment] = {}
        for comment in self.comments:
            self._by_id.setdefault(comment.id, comment)
        self.index = build_index(self.comments)

    def __contains__(self, comment_id: str) -> bool:
        return str(comment_id) in self._by_id

    def __len__(self) -> int:
        return len(self.comments)

    def get(self, comment_id: str) -> Comment | None:
        return self._by_id.get(str(comment_id))

    def children_of(self, parent_id: str | None) -> list[Comment]:
        return [self._by_id[cid] for cid in self.index.get(_parent_key(parent_id), [])]

    def depth_of(self, comment_id: str) -> int:
        """Number of ancestors between *comment_id* and its nearest root."""
        comment = self.get(comment_id)
        if comment is None:
            raise TreeIntegrityError(str(comment_id))

        depth = 0
        seen = {comment.id}
        while comment.parent_id is not None:
            parent = self._by_id.get(comment.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            depth += 1
            comment = parent
        return depth

    def can_reply_to(self, comment_id: str) -> bool:
        return self.depth_of(comment_id) < self.max_nesting_level

    def render(self, article_id: str, parent_id: str | None = None, level: int = 0) -> list[RenderedComment]:
        """
        Nested view of the comments of *article_id* under *parent_id*.

        Nodes below ``max_nesting_level`` get a reply affordance and have
        their children rendered; a node at that level is still shown but
        neither offers a reply nor descends further.
        """
        article_id = str(article_id)
        nodes: list[RenderedComment] = []
        for comment in self.children_of(parent_id):
            if comment.article_id != article_id:
                continue
            can_reply = level < self.max_nesting_level
            replies = self.render(article_id, comment.id, level + 1) if can_reply else []
            nodes.append(RenderedComment(comment=comment, level=level, can_reply=can_reply, replies=replies))
        return nodes

    def cascade_delete_set(self, comment_id: str) -> list[str]:
        """
        External keys of every descendant of *comment_id* followed by its
        own key.  Comments without an external key cannot be addressed
        and are skipped.
        """
        comment_id = str(comment_id)
        target = self._by_id.get(comment_id)
        if target is None:
            raise TreeIntegrityError(comment_id)

        keys: list[str] = []
        visited = {comment_id}
        stack = list(reversed(self.index.get(comment_id, [])))
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            child = self._by_id.get(current)
            if child is not None and child.external_key:
                keys.append(child.external_key)
            stack.extend(reversed(self.index.get(current, [])))

        if target.external_key:
            keys.append(target.external_key)
        return keys


# ---------------------------------------------------------------------------
# Snapshot parsing
# ---------------------------------------------------------------------------

def parse_comments(snapshot: Any) -> list[Comment]:
    """
    Convert a store snapshot (``{push_key: comment}``) into an ordered list
    with ``external_key`` set.  Entries that are not valid comments are
    skipped.
    """
    if not snapshot:
        return []
    if isinstance(snapshot, list):
        items = [(str(i), value) for i, value in enumerate(snapshot) if value is not None]
    elif isinstance(snapshot, dict):
        items = list(snapshot.items())
    else:
        logger.warning("Unexpected comment snapshot type: %s", type(snapshot).__name__)
        return []

    comments: list[Comment] = []
    for key, value in items:
        if not isinstance(value, dict):
            logger.debug("Skipping non-object comment entry %r", key)
            continue
        try:
            comments.append(Comment.model_validate({**value, "external_key": key}))
        except ValidationError as exc:
            logger.warning("Skipping malformed comment %r: %s", key, exc.error_count())
    return comments


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def load_comment_tree(
    selector: TransportSelector,
    path: str | None = None,
    max_nesting_level: int | None = None,
) -> CommentTree:
    snapshot = await selector.get(path or settings.COMMENTS_PATH)
    return CommentTree(parse_comments(snapshot), max_nesting_level)


async def watch_comments(
    selector: TransportSelector,
    path: str | None = None,
    max_nesting_level: int | None = None,
) -> AsyncIterator[CommentTree]:
    """Yield a freshly built ``CommentTree`` for every snapshot of the collection."""
    subscription = await selector.subscribe(path or settings.COMMENTS_PATH)
    try:
        async for snapshot in subscription:
            yield CommentTree(parse_comments(snapshot), max_nesting_level)
    finally:
        await subscription.cancel()


async def add_comment(
    selector: TransportSelector,
    limiter: RateLimiter,
    data: CommentCreate,
    tree: CommentTree | None = None,
    path: str | None = None,
    max_nesting_level: int | None = None,
) -> Comment | None:
    """
    Persist a new root comment or reply and return it with its store key.

    Replies are checked against *tree*, which is loaded from the store when
    not given.  Returns None, without consuming rate-limit quota, when the
    reply target is missing, belongs to another article, or is already at
    the maximum nesting level.  Raises ``RateLimitError`` when
    the comment action is blocked and ``TransportError`` when the write
    fails.
    """
    if data.parent_id is not None:
        if tree is None:
            tree = await load_comment_tree(selector, path, max_nesting_level)
        parent = tree.get(data.parent_id)
        if parent is None:
            logger.warning("Reply target %r not found; ignoring", data.parent_id)
            return None
        if parent.article_id != str(data.article_id):
            logger.warning("Reply target %r belongs to another article; ignoring", data.parent_id)
            return None
        if not tree.can_reply_to(parent.id):
            logger.warning("Reply target %r is at the maximum nesting level; ignoring", data.parent_id)
            return None

    await limiter.acquire()

    comment = Comment(
        id=generate_id(),
        article_id=str(data.article_id),
        parent_id=data.parent_id,
        name=data.name,
        text=data.text,
        date=datetime.now().strftime("%Y-%m-%d"),
    )
    comment.external_key = await selector.push(
        path or settings.COMMENTS_PATH, comment.model_dump(by_alias=True)
    )
    return comment


async def apply_delete(selector: TransportSelector, keys: list[str], path: str | None = None) -> list[str]:
    """Delete each key independently; return the keys whose delete failed."""
    base = (path or settings.COMMENTS_PATH).rstrip("/")
    failed: list[str] = []
    for key in keys:
        try:
            await selector.delete(f"{base}/{key}")
        except TransportError as exc:
            logger.warning("Failed to delete comment %r: %s", key, exc)
            failed.append(key)
    return failed


async def delete_comment(
    selector: TransportSelector,
    tree: CommentTree,
    comment_id: str,
    path: str | None = None,
) -> CascadeDeleteResult:
    """
    Delete *comment_id* together with all of its replies.

    A target missing from *tree* is a no-op.  The result lists every key
    that was attempted and the subset that failed.
    """
    try:
        keys = tree.cascade_delete_set(comment_id)
    except TreeIntegrityError as exc:
        logger.warning("%s; nothing deleted", exc)
        return CascadeDeleteResult()

    failed = await apply_delete(selector, keys, path)
    if failed:
        logger.warning("Cascade delete of %r left %d of %d key(s) in place", comment_id, len(failed), len(keys))
    return CascadeDeleteResult(attempted=keys, failed=failed)
