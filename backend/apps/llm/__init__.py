"""
Messages API protocol: wire types, codec, stream reassembly and the httpx client.
"""
