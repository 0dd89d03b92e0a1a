"""Negotiation of token range ownership (generations) between brokers."""