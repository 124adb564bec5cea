"""
Tenant-scoped repository base.

Every query starts from scope.apply(), so a row outside the caller's tenant
is never loaded, updated or deleted; such ids surface as NotFound.
"""
from cognicare.errors import NotFound
from cognicare.utils.pagination import paginate


class TenantRepository:
    model = None
    entity_name = 'Record'

    def __init__(self, session):
        self.session = session

    def query(self, scope):
        return scope.apply(self.session.query(self.model))

    def filtered(self, scope, filters):
        """Hook: apply list filters to the scoped query."""
        return self.query(scope)

    def default_order(self):
        return self.model.created_at.desc()

    def list(self, scope, filters=None, page=1, limit=20):
        query = self.filtered(scope, filters or {}).order_by(self.default_order())
        return paginate(query, page, limit)

    def get(self, scope, entity_id, for_update=False):
        query = self.query(scope).filter(self.model.id == entity_id)
        if for_update:
            query = query.with_for_update()
        obj = query.first()
        if obj is None:
            raise NotFound(f'{self.entity_name} not found')
        return obj

    def create(self, scope, payload):
        raise NotImplementedError

    def update(self, scope, entity_id, payload):
        raise NotImplementedError

    def delete(self, scope, entity_id):
        obj = self.get(scope, entity_id)
        self.session.delete(obj)
        self.session.flush()
        return obj

    @staticmethod
    def assign(obj, values):
        for key, value in values.items():
            setattr(obj, key, value)
        return obj
