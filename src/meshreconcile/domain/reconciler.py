"""Reconcile one desired document against the cluster.

Responsibilities of this stage:
- fetch the live object through the ``ClusterClient`` port
- match it against the desired document when the state asks for updates
- pick the action from the decision table and issue that single write

Errors from the client and the matcher are wrapped with the resource kind,
identity and the attempted action, with the original error kept as the cause. Nothing is
retried here and nothing is logged; both belong to the caller or the client
adapter.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .document import ResourceDocument, get_node, set_node
from .errors import ClusterClientError, MatchError, ReconcileError
from .matching import SemanticMatcher
from .state import Action, DesiredState, decide

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .document import ObjectKey, ResourceKind
    from .matching import MatchVerdict
    from .paths import FieldPath
    from .ports import ClusterClient


@dataclass(slots=True, kw_only=True)
class ReconcileOutcome:
    """What one reconcile call did to one object."""

    action: Action
    kind: ResourceKind
    key: ObjectKey
    diff_paths: frozenset[FieldPath] = frozenset()
    error: ReconcileError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def build_update(
    live: ResourceDocument,
    desired: ResourceDocument,
    verdict: MatchVerdict,
) -> ResourceDocument:
    """Return live with desired's value written at every differing path.

    Live-only fields, including ``metadata.resourceVersion``, are kept as they
    are, so the write only touches fields the desired document owns.
    """

    body = live.to_body()
    for path in verdict.sorted_paths():
        _extend_sequence(body, desired.body, path)
        set_node(body, path, copy.deepcopy(get_node(desired.body, path)))
    return ResourceDocument(kind=live.kind, body=body)


def _extend_sequence(body: dict[str, Any], source: Mapping[str, Any], path: FieldPath) -> None:
    """Copy desired's elements into live's sequence up to the position ``path`` writes.

    A missing element matched by a registered default has no diff path of its
    own, so the next differing position can lie past the end of live.
    """

    if not path.segments or not isinstance(path.last, int):
        return
    target = get_node(body, path.parent)
    if not isinstance(target, list):
        return
    elements = get_node(source, path.parent)
    target.extend(copy.deepcopy(elements[len(target) : path.last]))


@dataclass(slots=True)
class Reconciler:
    """Drive one resource towards its desired state.

    Calls for different objects may run in parallel. Calls for the same object
    must be serialised by the caller (normally the work queue feeding the
    controller); the reconciler holds no lock of its own.
    """

    client: ClusterClient
    matcher: SemanticMatcher = field(default_factory=SemanticMatcher)

    def reconcile(self, desired: ResourceDocument, state: DesiredState) -> ReconcileOutcome:
        kind = desired.kind
        key = desired.key

        try:
            live = self.client.get(kind, key.namespace, key.name)
        except ClusterClientError as exc:
            raise ReconcileError("could not get live object", kind=kind, key=key) from exc

        verdict: MatchVerdict | None = None
        if live is not None and state is DesiredState.PRESENT:
            try:
                verdict = self.matcher.match(live, desired)
            except MatchError as exc:
                raise ReconcileError("could not match live object", kind=kind, key=key) from exc

        action = decide(state, live_exists=live is not None, verdict=verdict)
        diff_paths = verdict.diff_paths if verdict is not None else frozenset()

        try:
            self._execute(action, desired=desired, live=live, verdict=verdict)
        except ClusterClientError as exc:
            message = f"could not {action} object"
            raise ReconcileError(message, kind=kind, key=key, action=action) from exc

        return ReconcileOutcome(action=action, kind=kind, key=key, diff_paths=diff_paths)

    def reconcile_all(
        self,
        items: Iterable[tuple[ResourceDocument, DesiredState]],
    ) -> list[ReconcileOutcome]:
        """Reconcile ``items`` in order, stopping at the first failure.

        The failed item is reported with its ``error`` set; later items are not
        attempted.
        """

        outcomes: list[ReconcileOutcome] = []
        for desired, state in items:
            try:
                outcomes.append(self.reconcile(desired, state))
            except ReconcileError as exc:
                outcomes.append(
                    ReconcileOutcome(
                        action=exc.action or Action.NOOP,
                        kind=exc.kind,
                        key=exc.key,
                        error=exc,
                    )
                )
                break
        return outcomes

    def _execute(
        self,
        action: Action,
        *,
        desired: ResourceDocument,
        live: ResourceDocument | None,
        verdict: MatchVerdict | None,
    ) -> None:
        match action:
            case Action.CREATE:
                self.client.create(desired.kind, desired)
            case Action.UPDATE:
                if live is None or verdict is None:
                    raise ValueError("An update needs both the live object and a verdict")
                self.client.update(desired.kind, build_update(live, desired, verdict))
            case Action.DELETE:
                if live is None:
                    raise ValueError("A delete needs the live object")
                self.client.delete(desired.kind, live)
            case Action.NOOP:
                pass
