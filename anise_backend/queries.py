"""
Read models.

Pure reads against the document store. Nothing here touches the chain.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import NotFoundError, ValidationError
from .models import Page
from .reconcile.pipeline import parse_entity_id
from .store.base import DocumentStore, Filter, join_path
from .utils import normalize_address

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("recent", "popular")

# Member-count bucket -> inclusive (low, high); None means unbounded
MEMBER_COUNT_BUCKETS: Dict[str, Tuple[int, Optional[int]]] = {
    "1-10": (1, 10),
    "11-50": (11, 50),
    "51-100": (51, 100),
    "100+": (101, None),
}


def _in_bucket(count: int, bucket: str) -> bool:
    low, high = MEMBER_COUNT_BUCKETS[bucket]
    return count >= low and (high is None or count <= high)


def _matches_search(dao: Dict[str, Any], search: str) -> bool:
    metadata = dao.get("metadata") or {}
    needle = search.lower()
    return (needle in str(metadata.get("name") or "").lower()
            or needle in str(metadata.get("description") or "").lower())


class ReadModel:
    """
    Paginated reads of the cached DAO data.

    Args:
        store: Document store
        clock: Returns "now" for time-window reads (upcoming events, active announcements)
    """

    def __init__(self, store: DocumentStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def list_collection(
        self,
        collection: str,
        page: Optional[Page] = None,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[Sequence[Tuple[str, str]]] = None,
        id_field: str = "id",
    ) -> List[Dict[str, Any]]:
        """List a collection with offset/limit or cursor pagination."""
        page = page or Page()
        docs = self.store.query(
            collection, where=where, order_by=order_by,
            offset=page.offset, limit=page.limit, start_after=page.start_after,
        )
        return [doc.to_dict(id_field) for doc in docs]

    def get_document(self, path: str, id_field: str = "id", what: str = "Document") -> Dict[str, Any]:
        data = self.store.get(path)
        if data is None:
            raise NotFoundError(f"{what} not found")
        return {id_field: path.rsplit("/", 1)[-1], **data}

    # -- DAOs ------------------------------------------------------------------

    def list_daos(
        self,
        search: Optional[str] = None,
        sort_by: str = "recent",
        member_count: Optional[str] = None,
        page: Optional[Page] = None,
    ) -> List[Dict[str, Any]]:
        """
        Search DAOs by name/description, bucket them by member count and sort.

        Args:
            search: Case-insensitive substring of metadata.name or metadata.description
            sort_by: "recent" (createdAt desc) or "popular" (memberCount desc)
            member_count: One of MEMBER_COUNT_BUCKETS, or "any"/None
            page: Pagination applied after filtering

        Raises:
            ValidationError: On an unknown sort option or bucket
        """
        page = page or Page()
        if sort_by not in SORT_OPTIONS:
            raise ValidationError(f"sortBy must be one of {', '.join(SORT_OPTIONS)}")
        if member_count in (None, "", "any"):
            member_count = None
        elif member_count not in MEMBER_COUNT_BUCKETS:
            raise ValidationError(f"memberCount must be one of any, {', '.join(MEMBER_COUNT_BUCKETS)}")

        order_by = [("createdAt", "desc")] if sort_by == "recent" else [("memberCount", "desc")]
        daos = [doc.to_dict("id") for doc in self.store.query("daos", order_by=order_by)]
        if search:
            daos = [dao for dao in daos if _matches_search(dao, search)]
        if member_count:
            daos = [dao for dao in daos if _in_bucket(int(dao.get("memberCount") or 1), member_count)]

        if page.start_after:
            ids = [dao["id"] for dao in daos]
            if page.start_after in ids:
                daos = daos[ids.index(page.start_after) + 1:]
        return daos[page.offset:page.offset + page.limit]

    def dao_modules(self, dao: str) -> Dict[str, Any]:
        dao = normalize_address(dao, "daoAddress")
        data = self.get_document(join_path("daos", dao), what=f"DAO {dao}")
        return data.get("modules") or {}

    # -- members ---------------------------------------------------------------

    def list_members(self, dao: str, page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(join_path("daos", dao, "members"), page, id_field="address")

    def get_member(self, dao: str, member: str) -> Dict[str, Any]:
        dao = normalize_address(dao, "daoAddress")
        member = normalize_address(member, "memberAddress")
        return self.get_document(join_path("daos", dao, "members", member), "address", "Member")

    def list_join_requests(self, dao: str, status: Optional[str] = None,
                           page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        where = [("status", "==", status)] if status else None
        return self.list_collection(join_path("daos", dao, "joinRequests"), page, where=where, id_field="applicant")

    # -- DAO entities ----------------------------------------------------------

    def list_entities(self, dao: str, collection: str, id_field: str,
                      page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(
            join_path("daos", dao, collection), page, order_by=[("createdAt", "desc")], id_field=id_field,
        )

    def get_entity(self, dao: str, collection: str, entity_id: Any, id_field: str) -> Dict[str, Any]:
        dao = normalize_address(dao, "daoAddress")
        entity_id = parse_entity_id(entity_id)
        data = self.get_document(
            join_path("daos", dao, collection, str(entity_id)), id_field, f"{collection[:-1].capitalize()}",
        )
        data[id_field] = str(entity_id)
        return data

    def votes(self, dao: str, collection: str, entity_id: Any) -> Dict[str, Any]:
        return self.get_entity(dao, collection, entity_id, "id").get("votes") or {}

    def list_documents(self, dao: str, executed: Optional[bool] = None,
                       page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        where = [("isExecuted", "==", executed)] if executed is not None else None
        return self.list_collection(
            join_path("daos", dao, "documents"), page, where=where,
            order_by=[("createdAt", "desc")], id_field="documentId",
        )

    def list_events(self, dao: str, page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(
            join_path("daos", dao, "events"), page, order_by=[("startTime", "asc")], id_field="eventId",
        )

    def upcoming_events(self, dao: str, limit: int = 10) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(
            join_path("daos", dao, "events"), Page(limit=limit),
            where=[("startTime", ">", self.clock())], order_by=[("startTime", "asc")], id_field="eventId",
        )

    def active_announcements(self, dao: str, page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(
            join_path("daos", dao, "announcements"), page,
            where=[("expiresAt", ">", self.clock())], order_by=[("expiresAt", "desc")],
            id_field="announcementId",
        )

    # -- treasury --------------------------------------------------------------

    def treasury(self, dao: str) -> Dict[str, Any]:
        dao = normalize_address(dao, "daoAddress")
        data = self.store.get(join_path("daos", dao, "treasury", "treasury"))
        if data is None:
            raise NotFoundError("Treasury info not found")
        return data

    def treasury_transactions(self, dao: str, page: Optional[Page] = None) -> List[Dict[str, Any]]:
        dao = normalize_address(dao, "daoAddress")
        return self.list_collection(
            join_path("daos", dao, "treasury", "transactions", "transactions"), page,
            order_by=[("timestamp", "desc")], id_field="txHash",
        )

    # -- users -----------------------------------------------------------------

    def get_user(self, uid: str) -> Dict[str, Any]:
        return self.get_document(join_path("users", uid), "uid", "User")

    def user_daos(self, uid: str, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Dict[str, Any]:
        """
        The DAOs a user belongs to, with their role and live member count.

        DAOs listed on the user but missing the membership are skipped.

        Returns:
            {"daos": [...], "total": int, "hasMore": bool}
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        user = self.get_user(uid)
        wallet = (user.get("wallet") or {}).get("address")
        if not wallet:
            raise ValidationError("User has no linked wallet")
        wallet = normalize_address(wallet, "wallet")

        daos = []
        for dao in user.get("daos") or []:
            dao_doc = self.store.get(join_path("daos", dao))
            if dao_doc is None:
                logger.warning(f"User {uid} lists missing DAO {dao}")
                continue
            member = self.store.get(join_path("daos", dao, "members", wallet))
            if member is None:
                logger.warning(f"User {uid} lists DAO {dao} but is not in its members")
                continue
            if search and not _matches_search(dao_doc, search):
                continue
            daos.append({
                "daoAddress": dao,
                "metadata": dao_doc.get("metadata") or {},
                "creator": dao_doc.get("creator"),
                "createdAt": dao_doc.get("createdAt"),
                "modules": dao_doc.get("modules") or {},
                "role": member.get("role") or "Member",
                "memberCount": self.store.count(join_path("daos", dao, "members")),
            })

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        daos.sort(key=lambda d: d["createdAt"] if isinstance(d["createdAt"], datetime) else epoch, reverse=True)
        start = (page - 1) * limit
        return {"daos": daos[start:start + limit], "total": len(daos), "hasMore": start + limit < len(daos)}

    def user_notifications(self, uid: str, page: Optional[Page] = None) -> List[Dict[str, Any]]:
        return self.list_collection(
            join_path("users", uid, "notifications"), page, order_by=[("createdAt", "desc")],
        )
