# ============================================================
#  graph.py — Asset dependency graph in CSR form
# ============================================================

from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np


@dataclass
class DependencyGraph:
    """
    Directed dependency graph over asset indices.

    Upstream dependencies of asset `a` are
        dep_idx[dep_ptr[a]:dep_ptr[a + 1]]
    Cycles are allowed. Propagation over the graph is bounded by a round
    cap, so they never need to be detected.
    """

    asset_ids: List[str]
    index: Dict[str, int]
    dep_ptr: np.ndarray  # [A + 1] int64
    dep_idx: np.ndarray  # [E] int64
    unresolved: List[tuple]  # (asset_id, missing_dep_id)

    @property
    def num_assets(self) -> int:
        return len(self.asset_ids)

    @property
    def num_edges(self) -> int:
        return int(self.dep_idx.shape[0])

    def upstream(self, asset_id: str) -> List[str]:
        a = self.index[asset_id]
        return [self.asset_ids[j] for j in self.dep_idx[self.dep_ptr[a] : self.dep_ptr[a + 1]]]


def build_dependency_graph(assets: Sequence) -> DependencyGraph:
    """
    Build the graph from `asset.dependencies`.

    Unknown ids are dropped (recorded in `unresolved`), self-edges and
    repeated edges are collapsed to at most one edge per pair.
    """
    asset_ids = [a.id for a in assets]
    index = {aid: i for i, aid in enumerate(asset_ids)}
    if len(index) != len(asset_ids):
        dupes = sorted({aid for aid in asset_ids if asset_ids.count(aid) > 1})
        raise ValueError(f"Duplicate asset ids: {dupes}")

    dep_ptr = np.zeros(len(assets) + 1, dtype=np.int64)
    edges: List[int] = []
    unresolved = []

    for i, asset in enumerate(assets):
        targets = []
        for dep in asset.dependencies or ():
            j = index.get(dep)
            if j is None:
                unresolved.append((asset.id, dep))
                continue
            if j == i or j in targets:
                continue
            targets.append(j)
        edges.extend(targets)
        dep_ptr[i + 1] = len(edges)

    return DependencyGraph(
        asset_ids=asset_ids,
        index=index,
        dep_ptr=dep_ptr,
        dep_idx=np.asarray(edges, dtype=np.int64),
        unresolved=unresolved,
    )
