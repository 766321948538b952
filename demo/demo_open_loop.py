#!/usr/bin/env python3
"""
Demo: Open-Loop Turbulence and Detector Frames

Shows the multiplexed clock driving two optical models side by side:
1. One timer fanned out to an on-axis diffractive model and an AO model
2. Both see the same turbulence, nothing is fed back
3. Detector frames are logged every 10 ticks by a slower logger

Also prints the conditioning of the AO sensor for 1, 3 and 6 guide stars.
"""

import dataclasses
from pathlib import Path

import matplotlib.pyplot as plt

from aoloop.experiments import ExperimentConfig, build_open_loop
from aoloop.observability import setup_logging
from aoloop.signals import DETECTOR_FRAME, WFE_RMS
from aoloop.viz import plot_detector_frame, plot_wfe_history, save_figure


def main():
    setup_logging("WARNING")

    print("=" * 60)
    print("  OPEN-LOOP TURBULENCE")
    print("=" * 60)

    config = ExperimentConfig(
        closed_loop=False,
        mirror_mode_count=6,
        n_lenslet=30,
        n_px_lenslet=8,
        lenslet_size=25.5 / 30,
        n_ticks=200,
        frame_period=10,
        cache_dir="output/calibrations",
    )
    output_dir = Path("output/demo_open_loop")
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"\n1. Running {config.n_ticks} ticks...")
    scenario = build_open_loop(config)
    report = scenario.model.run().wait()
    print(f"   {report.status.value} in {report.elapsed:.2f}s")
    print(f"   Tick consumers: {scenario.model.channels[('timer', 'Tick')].consumers}")

    wfe = scenario.logs.get(WFE_RMS).ravel()
    frames = scenario.frames.get(DETECTOR_FRAME)
    print(f"   WFE rms: mean {wfe.mean() * 1e9:.1f} nm, max {wfe.max() * 1e9:.1f} nm")
    print(f"   Frames logged: {len(frames)} at ticks {scenario.frames.ticks(DETECTOR_FRAME).tolist()}")

    print(f"\n2. Sensor conditioning vs guide star count:")
    for count in (1, 3, 6):
        variant = build_open_loop(dataclasses.replace(config, guide_star_count=count))
        conds = ", ".join(f"{c:.3g}" for c in variant.calibration.condition_numbers)
        print(f"   {count} guide star(s): {conds}")

    print(f"\n3. Generating plots...")
    fig, axes = plt.subplots(1, 2, figsize=(13, 5))
    plot_wfe_history(scenario.logs, time_step=config.time_step, ax=axes[0], log_scale=False)
    plot_detector_frame(frames[-1], title="Last detector frame", ax=axes[1])
    fig.tight_layout()
    save_figure(fig, output_dir / "open_loop.png")
    plt.close(fig)
    print(f"   Saved: {output_dir}/open_loop.png")

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)
    print(f"  • One timer, two optical models, identical turbulence")
    print(f"  • The frame logger reads every {config.frame_period} ticks and keeps the latest frame")
    print("=" * 60)


if __name__ == "__main__":
    main()
