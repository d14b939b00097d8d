"""
Therapist profile model used by onboarding and patient matching.
"""
from typing import Dict, Any

from sqlalchemy import Column, String, Text, DateTime, Date, ForeignKey, Boolean, Integer, JSON

from . import db, generate_uuid, utcnow, isoformat


class TherapistProfile(db.Model):
    __tablename__ = 'therapist_profiles'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    title = Column(String(120), nullable=False)
    degrees = Column(JSON, nullable=False, default=list)
    primary_location = Column(String(200), nullable=False)
    offers_online = Column(Boolean, nullable=False, default=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender_identity = Column(String(64), nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    languages_spoken = Column(JSON, nullable=False, default=list)
    profile_photo_url = Column(String, nullable=True)
    personal_statement = Column(Text, nullable=True)
    mental_health_specialties = Column(JSON, nullable=False, default=list)
    treatment_approaches = Column(JSON, nullable=False, default=list)
    age_ranges_treated = Column(JSON, nullable=False, default=list)
    lgbtq_affirming = Column(Boolean, nullable=False, default=False)
    session_fees = Column(JSON, nullable=True)
    completion_status = Column(String(32), nullable=False, default='incomplete')
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_card(self) -> Dict[str, Any]:
        """Public search card in the client's camelCase shape."""
        return {
            "id": self.id,
            "fullName": self.full_name,
            "title": self.title,
            "degrees": self.degrees or [],
            "primaryLocation": self.primary_location,
            "offersOnline": self.offers_online,
            "genderIdentity": self.gender_identity,
            "yearsOfExperience": self.years_of_experience,
            "languagesSpoken": self.languages_spoken or [],
            "profilePhotoUrl": self.profile_photo_url,
            "personalStatement": self.personal_statement,
            "mentalHealthSpecialties": self.mental_health_specialties or [],
            "treatmentApproaches": self.treatment_approaches or [],
            "ageRangesTreated": self.age_ranges_treated or [],
            "lgbtqAffirming": self.lgbtq_affirming,
            "sessionFees": self.session_fees
        }

    def to_dict(self) -> Dict[str, Any]:
        card = self.to_card()
        card.update({
            "userId": self.user_id,
            "phone": self.phone,
            "email": self.email,
            "dateOfBirth": isoformat(self.date_of_birth),
            "completionStatus": self.completion_status,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at)
        })
        return card

    def __repr__(self) -> str:
        return f"<TherapistProfile {self.full_name}>"
