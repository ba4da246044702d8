"""
plasmapic Test Suite

Tests organized by:
- test_mesh.py: Mesh construction, point location, exterior facets
- test_particles.py: Cell-partitioned population
- test_distributions.py / test_sampling.py: Distributions and samplers
- test_flux.py / test_injector.py: Boundary flux and injection
- test_distributor.py / test_pic_mover.py: Charge deposition and pushers
- test_simulation.py: Full time-step loop
"""
