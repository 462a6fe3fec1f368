"""Group messaging core: authorization, feed pagination and notification fan-out."""
