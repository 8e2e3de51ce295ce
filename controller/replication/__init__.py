"""
Replica construction and the owned-fields merge-apply used to write replicas
into target namespaces.
"""
