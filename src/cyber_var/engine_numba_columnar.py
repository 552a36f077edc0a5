import numpy as np
from numba import njit


@njit
def _incident_loss(u01, severity, hourly_loss, mean_hours, half_width, min_hours):
    base = mean_hours + (2.0 * u01 - 1.0) * half_width
    duration = max(min_hours, base * severity)
    return duration * hourly_loss


@njit
def _propagate_contagion(
    triggered: np.ndarray,  # (n, A) bool, updated in place
    dep_ptr: np.ndarray,  # (A + 1,)
    dep_idx: np.ndarray,  # (E,)
    contagion_factor: float,
    u_contagion: np.ndarray,  # (rounds, n, A)
):
    """
    Cascade failures along dependency edges, trial by trial.

    In each round every untriggered asset with k >= 1 failed upstream
    dependencies fails with probability contagion_factor * (1 - 0.5**k).
    Assets are visited in index order and a failure is visible to later
    assets in the same round. A trial stops at the first quiet round or
    after `rounds` rounds, whichever comes first.

    Returns the number of contagion-induced failures per trial.
    """
    n, A = triggered.shape
    rounds = u_contagion.shape[0]
    new_triggers = np.zeros(n, dtype=np.int64)

    if contagion_factor <= 0.0:
        return new_triggers

    for i in range(n):
        for r in range(rounds):
            changed = False
            for a in range(A):
                if triggered[i, a]:
                    continue
                k = 0
                for e in range(dep_ptr[a], dep_ptr[a + 1]):
                    if triggered[i, dep_idx[e]]:
                        k += 1
                if k == 0:
                    continue
                chance = contagion_factor * (1.0 - 0.5**k)
                if u_contagion[r, i, a] < chance:
                    triggered[i, a] = True
                    new_triggers[i] += 1
                    changed = True
            if not changed:
                break

    return new_triggers


@njit
def _run_trial_loop_numba_columnar(
    # Per-asset parameters (1D, length A)
    classic_prob: np.ndarray,
    neural_prob: np.ndarray,
    hourly_loss: np.ndarray,
    # Dependency graph (CSR)
    dep_ptr: np.ndarray,
    dep_idx: np.ndarray,
    # Scenario / model config
    contagion_factor: float,
    severity_multiplier: float,
    mean_hours: float,
    half_width: float,
    min_hours: float,
    # Uniform draws for this chunk
    u_classic_trigger: np.ndarray,  # (n, A)
    u_neural_trigger: np.ndarray,  # (n, A)
    u_contagion: np.ndarray,  # (rounds, n, A)
    u_classic_duration: np.ndarray,  # (n, A)
    u_neural_duration: np.ndarray,  # (n, A)
):
    """
    Columnar trial kernel for one chunk of n trials over A assets.

    Classic model: independent triggering at classic_prob, unstressed durations.
    Neural model: triggering at neural_prob, contagion over the dependency
    graph, durations scaled by severity_multiplier.

    Returns
      classic_loss      (n,)    classic total per trial
      neural_asset_loss (n, A)  neural loss per trial and asset (pre insurance)
      triggered_initial (n,)    neural failures before contagion
      triggered_contagion (n,)  neural failures added by contagion
    """
    n, A = u_classic_trigger.shape

    classic_loss = np.zeros(n, dtype=np.float64)
    neural_asset_loss = np.zeros((n, A), dtype=np.float64)
    triggered = np.zeros((n, A), dtype=np.bool_)
    triggered_initial = np.zeros(n, dtype=np.int64)

    # --------------------------------------------------------
    # Independent triggering (both models)
    # --------------------------------------------------------
    for i in range(n):
        for a in range(A):
            if u_classic_trigger[i, a] < classic_prob[a]:
                classic_loss[i] += _incident_loss(
                    u_classic_duration[i, a],
                    1.0,
                    hourly_loss[a],
                    mean_hours,
                    half_width,
                    min_hours,
                )
            if u_neural_trigger[i, a] < neural_prob[a]:
                triggered[i, a] = True
                triggered_initial[i] += 1

    # --------------------------------------------------------
    # Contagion (neural only)
    # --------------------------------------------------------
    triggered_contagion = _propagate_contagion(
        triggered, dep_ptr, dep_idx, contagion_factor, u_contagion
    )

    # --------------------------------------------------------
    # Loss realization (neural)
    # --------------------------------------------------------
    for i in range(n):
        for a in range(A):
            if triggered[i, a]:
                neural_asset_loss[i, a] = _incident_loss(
                    u_neural_duration[i, a],
                    severity_multiplier,
                    hourly_loss[a],
                    mean_hours,
                    half_width,
                    min_hours,
                )

    return classic_loss, neural_asset_loss, triggered_initial, triggered_contagion
