import numpy as np

import tiled_gravity as tg


def test_imports():
    print("Checking package version...")
    print(f"  Package Version: {tg.__version__}")
    assert tg.__version__ != "0.0.0", "Version fallback triggered improperly."

    print("\nChecking Public API access...")
    expected_attrs = [
        'make_inputs',
        'cpu_gravity',
        'compute_gravity',
        'LaunchConfig',
        'ConfigurationError',
        'compare_accelerations',
        'EPS2',
    ]
    for attr in expected_attrs:
        has_it = hasattr(tg, attr)
        print(f"  Access to tg.{attr:<25}: {'[OK]' if has_it else '[FAILED]'}")
        assert has_it, f"Could not find {attr} in top-level namespace"


def test_linkage_smoke():
    print("\nRunning CPU linkage smoke test (N=2)...")
    pos = np.array([[0, 0, 0], [1, 0, 0]], dtype=np.float32)
    particles = tg.make_particles(pos, 1.0)
    target = tg.duplicate(particles)

    tg.cpu_gravity(particles, target)
    assert target.shape == (7, 2)
    # The two particles pull towards each other
    assert target[4, 0] > 0
    assert target[4, 1] < 0


def test_privacy():
    print("\nChecking Privacy (Encapsulation)...")
    hidden_funcs = ['_cpu_gravity', '_get_kernel', '_launch_cpu']
    for func in hidden_funcs:
        exists = hasattr(tg, func)
        print(f"  tg.{func:<26} is hidden: {'[OK]' if not exists else '[FAILED]'}")
        assert not exists, f"Internal function {func} is exposed to the user!"
