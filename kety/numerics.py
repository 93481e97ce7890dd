
import numpy as np
from numba import jit

# ---------------------------------------------------------------------------
# JIT-Compilable Dead-Space Kernels (No objects, scalars/arrays only)
# ---------------------------------------------------------------------------

@jit(nopython=True)
def carry_over_fraction_jit(v_syr, v_dead):
    # g(v) = mod(v, Vd) / Vd, always in [0, 1)
    return np.mod(v_syr, v_dead) / v_dead

@jit(nopython=True)
def dead_space_recurrence_jit(n_syringe, v_syr, g, v_dead):
    """
    Forward recurrence for the dead-space corrected molar concentration.

    c[0] = N[0] / V[0]   (first draw is not contaminated by a prior draw)
    c[m] = (N[m] + g[m]*g[m-1]*Vd*c[m-1]) / (V[m] + g[m]*g[m-1]*Vd)
    """
    n = len(v_syr)
    c = np.empty(n)
    c[0] = n_syringe[0] / v_syr[0]

    for m in range(1, n):
        gm = g[m] * g[m - 1]
        c[m] = (n_syringe[m] + gm * v_dead * c[m - 1]) / (v_syr[m] + gm * v_dead)

    return c
