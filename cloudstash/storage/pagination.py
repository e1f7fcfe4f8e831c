"""
Pagination normalization.

Backends page in different ways: ListObjectsV2 continuation tokens, v1
string markers, page numbers, or one-shot tree dumps. These helpers turn all
of them into an opaque continuation token where None means "no more pages".
"""

from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from cloudstash.storage.base import FolderEntry, ListResult, ObjectEntry

E = TypeVar("E")


def normalize_token(token) -> Optional[str]:
    """Empty strings, None and the literal 'None' all mean no token."""
    if token in (None, "", "None"):
        return None
    return str(token)


def marker_token(is_truncated, next_marker: Optional[str],
                 last_keys: Sequence[str]) -> Optional[str]:
    """
    Continuation token for v1 marker listings.

    Without a delimiter some backends report truncation but omit NextMarker;
    the last key (or common prefix) of the page is then the marker.
    """
    if isinstance(is_truncated, str):
        is_truncated = is_truncated.lower() == "true"
    if not is_truncated:
        return None
    marker = normalize_token(next_marker)
    if marker is None and last_keys:
        marker = max(last_keys)
    return marker


def page_number_token(current_page: int, last_page: Optional[int] = None,
                      page_items: int = 0, page_size: Optional[int] = None) -> Optional[str]:
    """
    Token for page-numbered listings.

    With last_page known, stop on it; otherwise stop on a short page.
    """
    if last_page is not None:
        return str(current_page + 1) if current_page < last_page else None
    if page_size is not None and page_items >= page_size:
        return str(current_page + 1)
    return None


def parse_page_token(token: Optional[str]) -> int:
    token = normalize_token(token)
    if token is None:
        return 1
    try:
        page = int(token)
    except ValueError:
        raise ValueError(f"Invalid page token '{token}'")
    return max(page, 1)


def partition_by_delimiter(entries: Iterable[E], prefix: str, delimiter: Optional[str],
                           key_of: Callable[[E], str]) -> Tuple[List[E], List[str]]:
    """
    Emulate a delimiter listing on the client.

    Entries under the prefix whose remaining path contains the delimiter are
    folded into a common prefix ending at the first delimiter after the prefix.
    """
    files: List[E] = []
    folders: List[str] = []
    seen = set()
    for entry in entries:
        key = key_of(entry)
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix):]
        if not rest:
            continue
        if delimiter and delimiter in rest:
            folder = prefix + rest.split(delimiter, 1)[0] + delimiter
            if folder not in seen:
                seen.add(folder)
                folders.append(folder)
        else:
            files.append(entry)
    return files, folders


def paginate_sorted(keys: List[str], start_after: Optional[str],
                    max_keys: int) -> Tuple[List[str], Optional[str]]:
    """
    Client-side pagination over a sorted key list.

    The token is the last key handed out, so pages stay stable if keys are
    added before the cursor between calls.
    """
    start_after = normalize_token(start_after)
    remaining = [k for k in keys if start_after is None or k > start_after]
    page = remaining[:max_keys]
    next_token = page[-1] if len(remaining) > max_keys else None
    return page, next_token


def build_list_result(files: List[ObjectEntry], folder_keys: Iterable[str],
                      next_token) -> ListResult:
    return ListResult(
        files=files,
        folders=[FolderEntry(key=k) for k in folder_keys],
        next_continuation_token=normalize_token(next_token),
    )
