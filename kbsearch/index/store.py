"""
Document store adapter.

A read-through cache of document snapshots keyed by id. The content-management
service pushes snapshots in (put/evict on create/update/delete notifications);
when a snapshot is missing, the optional loader is asked for it (used by
single-document index repair). The adapter never writes back to the store.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..models import SearchDocument

logger = logging.getLogger(__name__)

DocumentLoader = Callable[[str], Optional[SearchDocument]]


def canonical_fields(doc: SearchDocument) -> List[Tuple[str, List[str]]]:
    """
    Field values fed to the analyzer, in indexing order.

    Multi-valued fields yield one value per label; tags and categories are
    sorted so the token stream (and positions) are independent of set
    iteration order.
    """
    return [
        ("title", [doc.title] if doc.title else []),
        ("summary", [doc.summary] if doc.summary else []),
        ("tags", sorted(doc.tags)),
        ("categories", sorted(doc.categories)),
        ("content", [doc.content] if doc.content else []),
    ]


class DocumentStoreAdapter:
    """Snapshot cache in front of the external content store"""

    def __init__(self, loader: Optional[DocumentLoader] = None):
        self._loader = loader
        self._snapshots: Dict[str, SearchDocument] = {}
        self._lock = threading.Lock()

    def put(self, doc: SearchDocument) -> None:
        with self._lock:
            self._snapshots[doc.id] = doc

    def get(self, doc_id: str) -> Optional[SearchDocument]:
        """Cached snapshot, or the loader's answer (cached) on a miss"""
        doc = self._snapshots.get(doc_id)
        if doc is not None or self._loader is None:
            return doc

        doc = self._loader(doc_id)
        if doc is not None:
            logger.debug(f"Loaded document {doc_id} from content store")
            self.put(doc)
        return doc

    def evict(self, doc_id: str) -> bool:
        with self._lock:
            return self._snapshots.pop(doc_id, None) is not None

    def replace_all(self, docs: Union[Dict[str, SearchDocument], Iterable[SearchDocument]]) -> None:
        """Replace every snapshot; a dict keyed by id is adopted without copying"""
        snapshots = docs if isinstance(docs, dict) else {doc.id: doc for doc in docs}
        with self._lock:
            self._snapshots = snapshots

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[SearchDocument]:
        return iter(list(self._snapshots.values()))
