"""Memcached Proxy Operator (MPO).

Cluster control loop that keeps mcrouter proxy fleets in line with their
declared MemcachedProxy resources:
 - rule tree defaulting and validation
 - spec fingerprinting for change detection
 - deduplicating work queue with per-key serialization
 - worker pool with bounded exponential backoff
 - child resource derivation (ConfigMap, Deployment, Service)
"""
