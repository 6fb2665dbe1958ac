from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

class MintRecord(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    wallet = db.Column(db.String(44), nullable=False, index=True)
    mint_address = db.Column(db.String(44), nullable=False)
    signing_mode = db.Column(db.String(16), nullable=False)
    signature = db.Column(db.String(88))
    status = db.Column(db.String(20), default='built') # built, cosigned, confirmed, unconfirmed
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'wallet': self.wallet,
            'mint': self.mint_address,
            'signingMode': self.signing_mode,
            'signature': self.signature,
            'status': self.status,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
