"""
Audience Resolver

Turns an AudienceSelector into a fixed, deduplicated tuple of recipient ids.
"""

import logging
from typing import Iterable, List, Tuple

from .models import AudienceKind, AudienceSelector, ResolvedAudience
from .protocols import AudienceResolutionError, DirectoryClientProtocol, ResolutionWarning

logger = logging.getLogger(__name__)


def dedupe_recipient_ids(recipient_ids: Iterable[str]) -> Tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order"""
    seen = set()
    ordered: List[str] = []
    for recipient_id in recipient_ids:
        if recipient_id is None:
            continue
        recipient_id = str(recipient_id).strip()
        if not recipient_id or recipient_id in seen:
            continue
        seen.add(recipient_id)
        ordered.append(recipient_id)
    return tuple(ordered)


class AudienceResolver:
    """Resolves selectors against the user directory"""

    def __init__(self, directory_client: DirectoryClientProtocol):
        self.directory_client = directory_client

    async def resolve(self, selector: AudienceSelector) -> ResolvedAudience:
        """
        Resolve a selector once.

        Raises:
            AudienceResolutionError: the directory could not answer. Nothing
                partial is returned.

        Zero matches is not an error; the result carries a ResolutionWarning.
        """
        if selector.kind == AudienceKind.EXPLICIT:
            raw_ids: Iterable[str] = selector.recipient_ids
        else:
            try:
                if selector.kind == AudienceKind.SEGMENT:
                    raw_ids = await self.directory_client.list_user_ids_by_role(selector.role)
                else:
                    raw_ids = await self.directory_client.list_all_user_ids()
            except AudienceResolutionError:
                raise
            except Exception as e:
                logger.error(f"Directory lookup failed for audience {selector.describe()}: {e}")
                raise AudienceResolutionError(
                    f"Failed to resolve audience {selector.describe()}: {e}",
                    selector=selector,
                ) from e

        recipient_ids = dedupe_recipient_ids(raw_ids)

        warning = None
        if not recipient_ids:
            warning = ResolutionWarning(
                f"Audience {selector.describe()} resolved to zero recipients",
                selector=selector,
            )
            logger.warning(str(warning))

        logger.debug(f"Resolved audience {selector.describe()} to {len(recipient_ids)} recipients")
        return ResolvedAudience(recipient_ids=recipient_ids, selector=selector, warning=warning)
