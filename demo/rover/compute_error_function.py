import logging
import os

from trackbound import (
    SweepConfig,
    VehicleParams,
    compute_error_function,
    load_timing,
    save_error_function,
)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # Initial speeds and commands covered by this table
    config = SweepConfig(
        v0_min=1.0,
        v0_max=2.0,
        w0_min=-1.0,
        w0_max=1.0,
        min_spd=1.0,
        max_spd=2.0,
        psi_end_min=-0.5,
        psi_end_max=0.5,
        delta_v=1.0,
        n_samples=4,
        t_sample=0.01,
    )
    vehicle = VehicleParams(wheelbase=0.3, slip_coefficient=4.4e-7)
    timing = load_timing("rover_timing.mat")

    g = compute_error_function(config, vehicle, timing, workers=os.cpu_count())
    path = save_error_function(g, "data")
    print(f"g_v coefficients: {g.g_v_coeffs}")
    print(f"g_w coefficients: {g.g_w_coeffs}")
    print(f"Discarded samples: {g.n_discarded}")
    print(f"Saved to {path}")
