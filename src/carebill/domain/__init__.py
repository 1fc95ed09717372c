"""Domain layer for carebill.

Services are imported from their own modules (``carebill.domain.billing``
and so on); this package does not re-export them so that the database layer
can import ``carebill.domain.entities`` without pulling the services in.
"""
