import numpy as np
from dataclasses import dataclass
from enum import Enum

from kety.errors import UnsupportedUnitError, ValidationError


class AmountUnit(Enum):
    """Values are the labels used in the lab notebooks."""
    MOL = "mol"
    MMOL = "mmol"
    MICROMOL = "micromol"
    NMOL = "nmol"
    PMOL = "pmol"
    FMOL = "fmol"

    @property
    def scale(self) -> float:
        return _AMOUNT_SCALE[self]

    @classmethod
    def from_label(cls, label):
        return _lookup(cls, label, {"moles": cls.MOL})


class VolumeUnit(Enum):
    LITER = "L"
    MILLILITER = "mL"
    MICROLITER = "microL"
    NANOLITER = "nanoL"
    PICOLITER = "pL"
    FEMTOLITER = "fL"

    @property
    def scale(self) -> float:
        return _VOLUME_SCALE[self]

    @classmethod
    def from_label(cls, label):
        return _lookup(cls, label, {})


class ConcentrationUnit(Enum):
    MOLAR = "M"
    MILLIMOLAR = "mM"
    MICROMOLAR = "microM"
    NANOMOLAR = "nM"
    PICOMOLAR = "pM"
    FEMTOMOLAR = "fM"

    @property
    def scale(self) -> float:
        return _CONCENTRATION_SCALE[self]

    @classmethod
    def from_label(cls, label):
        aliases = {
            "molar": cls.MOLAR,
            "mmolar": cls.MILLIMOLAR,
            "micromolar": cls.MICROMOLAR,
            "nmolar": cls.NANOMOLAR,
            "pmolar": cls.PICOMOLAR,
            "fmolar": cls.FEMTOMOLAR,
        }
        return _lookup(cls, label, aliases)


# Multiplier taking a value in the base unit (mol, L, M) to the given unit
_AMOUNT_SCALE = {
    AmountUnit.MOL: 1.0,
    AmountUnit.MMOL: 1.0e3,
    AmountUnit.MICROMOL: 1.0e6,
    AmountUnit.NMOL: 1.0e9,
    AmountUnit.PMOL: 1.0e12,
    AmountUnit.FMOL: 1.0e15,
}

_VOLUME_SCALE = {
    VolumeUnit.LITER: 1.0,
    VolumeUnit.MILLILITER: 1.0e3,
    VolumeUnit.MICROLITER: 1.0e6,
    VolumeUnit.NANOLITER: 1.0e9,
    VolumeUnit.PICOLITER: 1.0e12,
    VolumeUnit.FEMTOLITER: 1.0e15,
}

_CONCENTRATION_SCALE = {
    ConcentrationUnit.MOLAR: 1.0,
    ConcentrationUnit.MILLIMOLAR: 1.0e3,
    ConcentrationUnit.MICROMOLAR: 1.0e6,
    ConcentrationUnit.NANOMOLAR: 1.0e9,
    ConcentrationUnit.PICOMOLAR: 1.0e12,
    ConcentrationUnit.FEMTOMOLAR: 1.0e15,
}


def _lookup(enum_cls, label, aliases):
    if isinstance(label, enum_cls):
        return label
    if isinstance(label, str):
        if label in aliases:
            return aliases[label]
        for member in enum_cls:
            if member.value == label:
                return member
    raise UnsupportedUnitError(f"{enum_cls.__name__} has no unit '{label}'", step="units")


def to_base(value, unit):
    """Rescale `value` expressed in `unit` to mol, L or M."""
    return np.asarray(value, dtype=float) / unit.scale


def from_base(value, unit):
    return np.asarray(value, dtype=float) * unit.scale


@dataclass(frozen=True)
class PhysicalConstants:
    """
    Apparatus configuration shared by every series sampled through it.
    Volumes are in liters. Defaults follow Lee et al., AJNR 2010.
    """
    dead_space_volume: float = 1.2e-3  # catheter + valve dead space
    rinse_volume: float = 0.0          # syringes rinsed with heplock
    tubing_volume: float = 10.0e-3
    detector_volume: float = 333.0e-3  # gas analyzer headspace
    temperature: float = 298.0         # K
    pressure: float = 760.0            # Torr
    gas_constant: float = 62.36367     # L Torr K^-1 mol^-1

    amount_unit: AmountUnit = AmountUnit.MOL
    volume_unit: VolumeUnit = VolumeUnit.LITER
    concentration_unit: ConcentrationUnit = ConcentrationUnit.MOLAR

    def __post_init__(self):
        # frozen: normalise labels through object.__setattr__
        object.__setattr__(self, "amount_unit", AmountUnit.from_label(self.amount_unit))
        object.__setattr__(self, "volume_unit", VolumeUnit.from_label(self.volume_unit))
        object.__setattr__(self, "concentration_unit",
                           ConcentrationUnit.from_label(self.concentration_unit))

        if not self.dead_space_volume > 0:
            raise ValidationError("dead_space_volume must be positive", step="constants")
        for name in ("rinse_volume", "tubing_volume", "detector_volume"):
            val = getattr(self, name)
            if not np.isfinite(val) or val < 0:
                raise ValidationError(f"{name} must be finite and non-negative", step="constants")
        for name in ("temperature", "pressure", "gas_constant"):
            if not getattr(self, name) > 0:
                raise ValidationError(f"{name} must be positive", step="constants")

    @property
    def rt(self) -> float:
        return self.gas_constant * self.temperature


def chamber_moles(constants: PhysicalConstants) -> float:
    """
    n = P*V / (R*T) for the detector + tubing headspace, in mol.
    """
    if constants.volume_unit is not VolumeUnit.LITER:
        raise UnsupportedUnitError(
            f"chamber volume must be in L, got {constants.volume_unit.value}",
            step="chamber_moles")
    if constants.amount_unit is not AmountUnit.MOL:
        raise UnsupportedUnitError(
            f"chamber amount must be in mol, got {constants.amount_unit.value}",
            step="chamber_moles")
    v = constants.detector_volume + constants.tubing_volume
    return constants.pressure * v / constants.rt


def conc_to_torr(conc, constants: PhysicalConstants):
    """
    P = (n/V)*R*T. Only molar concentrations are accepted; there is no
    implicit rescaling from other units.
    """
    if constants.concentration_unit is not ConcentrationUnit.MOLAR:
        raise UnsupportedUnitError(
            f"partial pressure needs molar concentration, got {constants.concentration_unit.value}",
            step="conc_to_torr")
    return np.asarray(conc, dtype=float) * constants.rt


def torr_to_conc(torr, constants: PhysicalConstants):
    if constants.concentration_unit is not ConcentrationUnit.MOLAR:
        raise UnsupportedUnitError(
            f"partial pressure needs molar concentration, got {constants.concentration_unit.value}",
            step="torr_to_conc")
    return np.asarray(torr, dtype=float) / constants.rt
