"""Consensus data types with SSZ encoding and hash tree roots."""