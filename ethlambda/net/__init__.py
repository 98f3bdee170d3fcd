"""Snappy, gossip and request/response encodings, and the HTTP API."""