"""
Shared infrastructure of the residual pipelines: basis, mesh, topology,
buffers, transfer, comparison and error types.
"""
