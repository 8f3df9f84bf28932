"""Family Health Privacy Governance Engine.

Permission resolution across layered access grants, per-child privacy
overrides, consent and deletion lifecycle management with legal holds, and
HIPAA-style audit trails with suspicious activity detection.
"""

__version__ = "0.1.0"
