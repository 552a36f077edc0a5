# cyber_var/mc_generator.py
from dataclasses import dataclass
from typing import Optional

import numpy as np

MAX_CONTAGION_ROUNDS = 5


@dataclass
class TrialDraws:
    """
    All uniform [0, 1) variates consumed by one chunk of trials.

    Shapes are [n, A] except `contagion`, which is [rounds, n, A]. The
    kernel only reads a contagion draw when the asset is a propagation
    candidate in that round; unused draws are simply discarded.
    """

    classic_trigger: np.ndarray
    neural_trigger: np.ndarray
    contagion: np.ndarray
    classic_duration: np.ndarray
    neural_duration: np.ndarray

    @property
    def num_trials(self) -> int:
        return self.classic_trigger.shape[0]


class TrialRandomStream:
    """
    Explicit random source for the trial loop.

    Wraps a numpy Generator; pass `seed` for reproducible runs or an existing
    `rng` to share a stream. With neither, a fresh OS-entropy seed is used.
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        contagion_rounds: int = MAX_CONTAGION_ROUNDS,
    ):
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.contagion_rounds = contagion_rounds

    def draw(self, num_trials: int, num_assets: int, with_contagion: bool = True) -> TrialDraws:
        shape = (num_trials, num_assets)
        rounds = self.contagion_rounds if with_contagion else 0

        # Fixed draw order keeps a seeded run reproducible.
        classic_trigger = self.rng.random(shape)
        neural_trigger = self.rng.random(shape)
        contagion = self.rng.random((rounds, num_trials, num_assets))
        classic_duration = self.rng.random(shape)
        neural_duration = self.rng.random(shape)

        return TrialDraws(
            classic_trigger=classic_trigger,
            neural_trigger=neural_trigger,
            contagion=contagion,
            classic_duration=classic_duration,
            neural_duration=neural_duration,
        )
