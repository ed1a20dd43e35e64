from particle_forge.operator.field.field_processor import FieldProcessor
