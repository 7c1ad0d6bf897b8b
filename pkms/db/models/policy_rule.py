from sqlalchemy import Column, Integer, String

from pkms.db.base import Base


class PolicyRule(Base):
    """Durable row of the policy store, in the casbin rule layout.

    ``ptype`` is "p" for grant facts (subject, domain, object, action) and
    "g" for grouping facts (user, role, domain). Unused value columns stay
    NULL, which is where a rule's fields end.
    """

    __tablename__ = "policy_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ptype = Column(String(255), nullable=False, index=True)
    v0 = Column(String(255))
    v1 = Column(String(255))
    v2 = Column(String(255))
    v3 = Column(String(255))
    v4 = Column(String(255))
    v5 = Column(String(255))

    def values(self):
        fields = []
        for value in (self.v0, self.v1, self.v2, self.v3, self.v4, self.v5):
            if value is None:
                break
            fields.append(value)
        return fields

    def __str__(self):
        return ", ".join([self.ptype] + self.values())

    def __repr__(self):
        return f'<PolicyRule {self.id}: "{self}">'
