from particle_forge.operator.sort.radix_sort import RadixSort
