"""
Restaurant ordering: order composition, pricing, cart and checkout.
"""
