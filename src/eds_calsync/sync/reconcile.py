"""
Full-replace reconciliation of the local mirror against a remote snapshot.

Every inbound message is treated as a complete restatement of the remote
party's busy time for the window. Anything the local mirror holds that the
latest snapshot does not reaffirm is purged; a remote side that sends only
partial updates will therefore see its omitted events deleted here.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field

from eds_calsync.fingerprint import distinct
from eds_calsync.fingerprint import fingerprint
from eds_calsync.fingerprint import fingerprint_set
from eds_calsync.models import Occurrence
from eds_calsync.models import SyncTagViolation


@dataclass
class ReconcilePlan:
    to_add: list[Occurrence] = field(default_factory=list)
    to_remove: list[Occurrence] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_add and not self.to_remove


def reconcile(remote: Iterable[Occurrence], local_synced: Iterable[Occurrence]) -> ReconcilePlan:
    """Compute the additions and removals that make the mirror match ``remote``.

    ``local_synced`` must hold only tagged occurrences inside the window;
    anything else raises SyncTagViolation before a plan is produced.

    Remote duplicates (same fingerprint) yield at most one addition. Local
    duplicates whose fingerprint is still present remotely are left alone;
    when the fingerprint is gone every local copy is removed.

    An empty ``remote`` is a legitimate "nothing busy" report and removes the
    whole mirror. Callers that want "no message received" to mean "do
    nothing" must check for that before calling.
    """
    remote = list(remote)
    local_synced = list(local_synced)

    for occ in local_synced:
        if not occ.is_tagged:
            raise SyncTagViolation(
                f"Refusing to reconcile untagged occurrence {occ.describe()} (uid={occ.uid})"
            )

    remote_keys = fingerprint_set(remote)
    local_keys = fingerprint_set(local_synced)

    to_add = [o.as_synced() for o in distinct(remote) if fingerprint(o) not in local_keys]
    to_remove = [o for o in local_synced if fingerprint(o) not in remote_keys]
    return ReconcilePlan(to_add=to_add, to_remove=to_remove)
