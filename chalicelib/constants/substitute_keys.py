# Attribute names which clash with DynamoDB reserved words are stored with a trailing underscore
to_db = {
    'id': 'id_',
    'name': 'name_',
    'status': 'status_',
    'comment': 'comment_'
}

# None means the attribute is dropped before the item is returned to UI
from_db = {
    'id_': 'id',
    'name_': 'name',
    'status_': 'status',
    'comment_': 'comment',
    'partkey': None,
    'sortkey': None,
    'ttl_': None,
    'record_type': None,
    'company_id': None
}
