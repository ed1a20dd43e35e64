from particle_forge.operator.particle_injector.particle_injector import ParticleInjector
