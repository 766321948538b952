#!/usr/bin/env python3
"""
Demo: Closed-Loop Adaptive Optics

Runs the segmented-mirror AO loop end to end:
1. Calibrate the sensor (poke matrix -> reconstruction operator)
2. Wire timer -> optics -> reconstructor -> integrator -> optics
3. Run against AR(1) turbulence and log the residual wavefront
4. Compare with the same turbulence left uncorrected

The integrator is bootstrapped: its zero command on tick 0 is what makes
the feedback cycle schedulable.
"""

import dataclasses
from pathlib import Path

import matplotlib.pyplot as plt

from aoloop.experiments import ExperimentConfig, build_closed_loop, build_open_loop
from aoloop.observability import setup_logging
from aoloop.signals import WFE_RMS
from aoloop.viz import plot_flowchart, plot_segment_piston, plot_wfe_history, save_figure


def main():
    setup_logging("INFO", format_type="simple")

    print("=" * 60)
    print("  CLOSED-LOOP ADAPTIVE OPTICS")
    print("=" * 60)

    config = ExperimentConfig(
        mirror_mode_count=6,
        n_lenslet=30,
        lenslet_size=25.5 / 30,
        loop_gain=0.5,
        n_ticks=400,
        cache_dir="output/calibrations",
    )
    output_dir = Path("output/demo_closed_loop")
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"\n1. Setup:")
    print(f"   Lenslets: {config.n_lenslet}x{config.n_lenslet}, {config.sensor_mode} sensor")
    print(f"   Modes per segment: {config.mirror_mode_count} (piston included)")
    print(f"   Loop gain: {config.loop_gain}, {config.n_ticks} ticks of {config.time_step * 1e3:.1f} ms")

    print(f"\n2. Running closed loop...")
    loop = build_closed_loop(config)
    print(f"   Schedule: {' -> '.join(loop.model.schedule)}")
    report = loop.model.run().wait()
    print(f"   {report.status.value}: {report.ticks_completed} ticks in {report.elapsed:.2f}s")

    print(f"\n3. Running open loop on the same turbulence...")
    reference = build_open_loop(dataclasses.replace(config, closed_loop=False))
    reference.model.run().wait()

    wfe_closed = loop.logs.get(WFE_RMS).ravel()
    wfe_open = reference.logs.get(WFE_RMS).ravel()
    half = config.n_ticks // 2

    print(f"\n4. Generating plots...")
    fig, ax = plt.subplots(figsize=(9, 4))
    plot_wfe_history(reference.logs, time_step=config.time_step, label="open loop", ax=ax)
    plot_wfe_history(loop.logs, time_step=config.time_step, label="closed loop", ax=ax)
    save_figure(fig, output_dir / "wfe.png")
    plt.close(fig)

    fig, ax = plot_segment_piston(loop.logs, time_step=config.time_step)
    save_figure(fig, output_dir / "piston.png")
    plt.close(fig)

    fig, ax = plot_flowchart(loop.model, path=output_dir / "flowchart.png")
    plt.close(fig)
    print(f"   Saved: {output_dir}/")

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)
    print(f"  • Poke matrix condition number: {loop.calibration.condition_numbers[0]:.3g}")
    print(f"  • Open-loop WFE (second half):   {wfe_open[half:].mean() * 1e9:.1f} nm")
    print(f"  • Closed-loop WFE (second half): {wfe_closed[half:].mean() * 1e9:.1f} nm")
    print(f"  • What is left is mostly segment piston, which the sensor cannot see")
    print("=" * 60)


if __name__ == "__main__":
    main()
