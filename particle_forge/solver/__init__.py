from particle_forge.solver.simulation import Simulation
