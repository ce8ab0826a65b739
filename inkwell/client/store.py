"""
Client-side post cache with optimistic updates.

Each mutation moves its post through

    IDLE -> PENDING -> COMMITTED | ROLLED_BACK

The tentative change is applied to the local list before the request is
sent. On success the entry is replaced with the server's copy (ids, slug and
timestamps come from the server); on failure the entry is put back exactly as
it was and the normalized error message is kept in ``last_error``.

Mutations on the same post run one at a time in call order. Once a request
is sent, cancelling the caller does not cancel it; the commit or rollback
still lands in the shared list. Failed requests are never retried.
"""

import asyncio
import copy
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Mapping, Optional, Union

from inkwell.client.api import ApiError, BlogApiClient, ImageUpload
from inkwell.client.logger import ClientLogger
from inkwell.core.tags import parse_tags

PostId = Union[int, str]
Subscriber = Callable[["PostStore"], None]

TEMP_ID_PREFIX = "temp-"


class OperationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class PostStore:
    def __init__(self, api: BlogApiClient, logger: Optional[ClientLogger] = None):
        self.api = api
        self.logger = logger
        self.posts: List[Dict[str, Any]] = []
        self.page = 1
        self.total_pages = 0
        self.last_error: Optional[str] = None
        self._states: Dict[Hashable, OperationState] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        # Mutations holding or queued on each lock
        self._lock_users: Dict[Hashable, int] = {}
        self._subscribers: List[Subscriber] = []

    # ----- observation -----

    def snapshot(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.posts)

    def state_of(self, post_id: PostId) -> OperationState:
        return self._states.get(post_id, OperationState.IDLE)

    def find(self, post_id: PostId) -> Optional[Dict[str, Any]]:
        index = self._index_of(post_id)
        return self.posts[index] if index is not None else None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    def _index_of(self, post_id: PostId) -> Optional[int]:
        for i, post in enumerate(self.posts):
            if post.get("id") == post_id:
                return i
        return None

    # ----- loading -----

    async def load(
        self,
        page: int = 1,
        limit: int = 6,
        search: Optional[str] = None,
        category: Optional[PostId] = None,
    ) -> List[Dict[str, Any]]:
        """Replace the local list with one page from the server."""
        try:
            data = await self.api.list_posts(page=page, limit=limit, search=search, category=category)
        except ApiError as e:
            self.last_error = e.message
            self._notify()
            raise

        self.posts = list(data.get("posts", []))
        self.page = data.get("page", page)
        self.total_pages = data.get("total_pages", 0)
        self.last_error = None
        self._notify()
        return self.posts

    # ----- mutations -----

    async def create(
        self,
        fields: Mapping[str, Any],
        image: Optional[ImageUpload] = None,
    ) -> Dict[str, Any]:
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"

        def apply() -> Callable[[], None]:
            tentative = {"id": temp_id, "slug": None, "pending": True, **copy.deepcopy(dict(fields))}
            tentative["tags"] = parse_tags(fields.get("tags"))
            self.posts.insert(0, tentative)

            def undo() -> None:
                index = self._index_of(temp_id)
                if index is not None:
                    del self.posts[index]

            return undo

        def commit(created: Dict[str, Any]) -> None:
            temp_index = self._index_of(temp_id)
            existing = self._index_of(created["id"])
            if existing is not None:
                # A reload already brought the server copy in
                self.posts[existing] = created
                if temp_index is not None:
                    del self.posts[temp_index]
            elif temp_index is not None:
                self.posts[temp_index] = created
            else:
                self.posts.insert(0, created)
            self._states[created["id"]] = OperationState.COMMITTED

        return await self._mutate(
            temp_id,
            apply,
            lambda: self.api.create_post(
                title=fields.get("title"),
                content=fields.get("content"),
                category=fields.get("category"),
                tags=fields.get("tags"),
                image=image,
            ),
            commit,
        )

    async def update(
        self,
        post_id: PostId,
        fields: Mapping[str, Any],
        image: Optional[ImageUpload] = None,
        version: Optional[int] = None,
    ) -> Dict[str, Any]:
        def apply() -> Callable[[], None]:
            index = self._index_of(post_id)
            if index is None:
                return lambda: None
            previous = copy.deepcopy(self.posts[index])
            changes = copy.deepcopy(dict(fields))
            if "tags" in changes:
                changes["tags"] = parse_tags(changes["tags"])
            self.posts[index] = {**self.posts[index], **changes, "pending": True}

            def undo() -> None:
                current = self._index_of(post_id)
                if current is not None:
                    self.posts[current] = previous

            return undo

        def commit(updated: Dict[str, Any]) -> None:
            index = self._index_of(post_id)
            if index is not None:
                self.posts[index] = updated

        return await self._mutate(
            post_id,
            apply,
            lambda: self.api.update_post(post_id, fields, image=image, version=version),
            commit,
        )

    async def delete(self, post_id: PostId) -> Dict[str, Any]:
        def apply() -> Callable[[], None]:
            index = self._index_of(post_id)
            if index is None:
                return lambda: None
            removed = self.posts.pop(index)

            def undo() -> None:
                self.posts.insert(min(index, len(self.posts)), removed)

            return undo

        def commit(_response: Dict[str, Any]) -> None:
            index = self._index_of(post_id)
            if index is not None:
                del self.posts[index]

        return await self._mutate(post_id, apply, lambda: self.api.delete_post(post_id), commit)

    async def _mutate(
        self,
        key: Hashable,
        apply: Callable[[], Callable[[], None]],
        call: Callable[[], Awaitable[Dict[str, Any]]],
        commit: Callable[[Dict[str, Any]], None],
    ) -> Dict[str, Any]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        # Queue behind any pending mutation of the same post
        try:
            await lock.acquire()
        except BaseException:
            self._leave_lock(key)
            raise
        try:
            undo = apply()
        except BaseException:
            lock.release()
            self._leave_lock(key)
            raise

        self._states[key] = OperationState.PENDING
        self._notify()

        task = asyncio.ensure_future(self._settle(key, lock, call, commit, undo))
        task.add_done_callback(_consume_result)
        return await asyncio.shield(task)

    async def _settle(
        self,
        key: Hashable,
        lock: asyncio.Lock,
        call: Callable[[], Awaitable[Dict[str, Any]]],
        commit: Callable[[Dict[str, Any]], None],
        undo: Callable[[], None],
    ) -> Dict[str, Any]:
        try:
            try:
                result = await call()
            except ApiError as e:
                self._roll_back(key, undo, e.message)
                raise
            except Exception:
                self._roll_back(key, undo, "Server Error")
                raise

            commit(result)
            if self._states.get(key) is OperationState.PENDING:
                self._states[key] = OperationState.COMMITTED
            self.last_error = None
            self._notify()
            return result
        finally:
            lock.release()
            self._leave_lock(key)
            if isinstance(key, str) and key.startswith(TEMP_ID_PREFIX):
                # Temp ids never come back once the create has settled
                self._states.pop(key, None)

    def _leave_lock(self, key: Hashable) -> None:
        remaining = self._lock_users.get(key, 1) - 1
        if remaining > 0:
            self._lock_users[key] = remaining
        else:
            self._lock_users.pop(key, None)
            self._locks.pop(key, None)

    def _roll_back(self, key: Hashable, undo: Callable[[], None], message: str) -> None:
        undo()
        self._states[key] = OperationState.ROLLED_BACK
        self.last_error = message
        if self.logger is not None:
            self.logger.warning("Optimistic update rolled back", post_id=str(key), error=message)
        self._notify()


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # The caller may have been cancelled; the outcome is already in the store
    if not task.cancelled():
        task.exception()
