"""Basic import tests to verify package structure."""


def test_import_aoloop():
    """Verify main package imports."""
    import aoloop
    assert aoloop.__version__ == "0.1.0"


def test_import_core():
    """Verify core module structure exists."""
    from aoloop import core
    assert hasattr(core, "Model")
    assert hasattr(core, "Actor")


def test_import_control():
    from aoloop import control
    assert hasattr(control, "Reconstructor")
    assert hasattr(control, "Integrator")


def test_import_plant():
    from aoloop import plant
    assert hasattr(plant, "OpticalModel")


def test_import_experiments():
    from aoloop import experiments
    assert hasattr(experiments, "run_experiment")


def test_import_viz():
    from aoloop import viz
    assert hasattr(viz, "plot_flowchart")
