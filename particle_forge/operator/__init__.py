from particle_forge.operator.operator import Operator
