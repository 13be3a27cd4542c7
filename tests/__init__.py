"""
Builders for the synthetic NITF and SICD test inputs, which write the NITF 2.1
header and subheader fields directly.
"""

import unittest

import numpy


# raster of shape (nbpc, nppbv, nbpr, nppbh, bands) -> stored block layout
_BLOCK_ORDER = {
    'P': (0, 2, 1, 3, 4),  # (nbpc, nbpr, nppbv, nppbh, bands)
    'B': (0, 2, 4, 1, 3),  # (nbpc, nbpr, bands, nppbv, nppbh)
    'R': (0, 2, 1, 4, 3),  # (nbpc, nbpr, nppbv, bands, nppbh)
    'S': (4, 0, 2, 1, 3),  # (bands, nbpc, nbpr, nppbv, nppbh)
}

# unclassified, with the remaining security fields blank
_SECURITY = b'U' + b' '*166


def _fields(*entries):
    """
    Pack `(value, width)` pairs as fixed width fields. Integers are zero padded,
    strings are space padded on the right, and bytes are null padded.

    Returns
    -------
    bytes
    """

    out = []
    for value, width in entries:
        if isinstance(value, bytes):
            packed = value.ljust(width, b'\x00')
        elif isinstance(value, int):
            packed = '{0:0{1}d}'.format(value, width).encode()
        else:
            packed = '{0:<{1}s}'.format(value, width).encode()
        if len(packed) != width:
            raise ValueError('Value {!r} does not fit in a field of width {}'.format(value, width))
        out.append(packed)
    return b''.join(out)


def _extension(data):
    # a five digit length, followed by a three digit overflow field and the data
    if len(data) == 0:
        return b'00000'
    return _fields((len(data) + 3, 5), (0, 3)) + data


def encode_bands(data, imode='P', nbpr=1, nbpc=1, nppbh=None, nppbv=None, pad_value=0):
    """
    Encode the array of shape `(rows, cols, bands)` as image segment data, with
    the given blocking and band interleave.

    Parameters
    ----------
    data : numpy.ndarray
        Of the (big-endian) raw data type.
    imode : str
    nbpr : int
    nbpc : int
    nppbh : None|int
    nppbv : None|int
    pad_value : int|float

    Returns
    -------
    bytes
    """

    rows, cols, bands = data.shape
    nppbh = cols if nppbh is None else nppbh
    nppbv = rows if nppbv is None else nppbv
    padded = numpy.full((nbpc*nppbv, nbpr*nppbh, bands), pad_value, dtype=data.dtype)
    padded[:rows, :cols, :] = data
    blocks = numpy.reshape(padded, (nbpc, nppbv, nbpr, nppbh, bands))
    return numpy.ascontiguousarray(numpy.transpose(blocks, _BLOCK_ORDER[imode])).tobytes()


def make_image_header(
        rows, cols, irep='MONO', pvtype='INT', nbpp=8, isubcats=('', ), imode='B',
        nbpr=1, nbpc=1, nppbh=0, nppbv=0, iloc=(0, 0), idlvl=1, ialvl=0, luts=None, ic='NC',
        igeolo=None, comments=(), user_data=b''):
    """
    Make an image segment subheader.

    Parameters
    ----------
    rows : int
    cols : int
    irep : str
    pvtype : str
    nbpp : int
    isubcats : Sequence[str]
        One entry per band.
    imode : str
    nbpr : int
    nbpc : int
    nppbh : int
    nppbv : int
    iloc : Tuple[int, int]
    idlvl : int
    ialvl : int
    luts : None|Sequence[None|numpy.ndarray]
        The `LUTD` of each band, of shape `(NLUTS, NELUT)`.
    ic : str
    igeolo : None|str
        Given with `ICORDS` of `G`, otherwise `ICORDS` is blank.
    comments : Sequence[str]
    user_data : bytes
        The user defined image data.

    Returns
    -------
    bytes
    """

    if luts is None:
        luts = [None, ]*len(isubcats)
    if len(isubcats) <= 9:
        parts = [_fields((len(isubcats), 1))]
    else:
        parts = [_fields((0, 1), (len(isubcats), 5))]
    for subcat, lut in zip(isubcats, luts):
        parts.append(_fields(('', 2), (subcat, 6), ('N', 1), ('', 3)))
        if lut is None:
            parts.append(b'0')
        else:
            parts.append(_fields((lut.shape[0], 1), (lut.shape[1], 5)) + lut.astype('uint8').tobytes())
    bands = b''.join(parts)

    return b''.join([
        _fields(('IM', 2), ('TESTIMAGE', 10), ('20240101000000', 14), ('', 17), ('synthetic image segment', 80)),
        _SECURITY,
        _fields(('0', 1), ('', 42), (rows, 8), (cols, 8), (pvtype, 3), (irep, 8), ('SAR', 8), (nbpp, 2), ('R', 1)),
        _fields(('', 1)) if igeolo is None else _fields(('G', 1), (igeolo, 60)),
        _fields((len(comments), 1), *[(comment, 80) for comment in comments]),
        _fields((ic, 2)),
        b'' if ic in ('NC', 'NM') else _fields(('1.0', 4)),
        bands,
        _fields(
            (0, 1), (imode, 1), (nbpr, 4), (nbpc, 4), (nppbh, 4), (nppbv, 4), (nbpp, 2),
            (idlvl, 3), (ialvl, 3), ('{0:05d}{1:05d}'.format(*iloc), 10), ('1.0', 4)),
        _extension(user_data),
        _extension(b'')])


def make_sicd_des_subheader(identifier='SICD Volume 1 Design & Implementation Description Document'):
    """
    Make the user defined subheader of a SICD XML data extension, following
    the `DESSHL` field.

    Returns
    -------
    bytes
    """

    return _fields(
        (99999, 5), ('XML', 8), ('2024-01-01T00:00:00Z', 20), ('', 40), (identifier, 60),
        ('1.2', 10), ('2018-12-13T00:00:00Z', 20), ('urn:SICD:1.2.1', 120), ('', 125),
        ('', 25), ('', 20), ('', 120), ('', 200))


def make_des_header(desid='XML_DATA_CONTENT', user_header=b''):
    """
    Make a data extension subheader.

    Parameters
    ----------
    desid : str
    user_header : bytes
        The user defined subheader fields.

    Returns
    -------
    bytes
    """

    overflow = _fields(('UDHD', 6), (1, 3)) if desid == 'TRE_OVERFLOW' else b''
    return b''.join([
        _fields(('DE', 2), (desid, 25), (1, 2)), _SECURITY, overflow,
        _fields((len(user_header), 4)), user_header])


def build_nitf(images, data_extensions=(), file_length=None):
    """
    Assemble a complete NITF file.

    Parameters
    ----------
    images : Sequence[Tuple[bytes, bytes]]
        The subheader and data of each image segment.
    data_extensions : Sequence[Tuple[bytes, bytes]]
        The subheader and data of each data extension segment.
    file_length : None|int
        Overrides the `FL` field.

    Returns
    -------
    bytes
    """

    images = list(images)
    data_extensions = list(data_extensions)
    image_table = _fields((len(images), 3), *[
        entry for sub, data in images for entry in ((len(sub), 6), (len(data), 10))])
    des_table = _fields((len(data_extensions), 3), *[
        entry for sub, data in data_extensions for entry in ((len(sub), 4), (len(data), 9))])
    # graphics, reserved for future use, text
    tables = image_table + b'000000000' + des_table + b'000'  # no reserved extensions
    header_length = 360 + len(tables) + 10
    if file_length is None:
        file_length = header_length + sum(len(sub) + len(data) for sub, data in images + data_extensions)

    parts = [
        _fields(
            ('NITF', 4), ('02.10', 5), (3, 2), ('BF01', 4), ('NITFVIZ', 10),
            ('20240101000000', 14), ('synthetic test file', 80)),
        _SECURITY,
        _fields(
            (0, 5), (0, 5), ('0', 1), (b'\x00\x00\x00', 3), ('', 24), ('', 18),
            (file_length, 12), (header_length, 6)),
        tables,
        b'0000000000',  # no user defined or extended header data
    ]
    for sub, data in images + data_extensions:
        parts.append(sub)
        parts.append(data)
    return b''.join(parts)


def mono_image(raster, **kwargs):
    """
    Make a MONO image segment from the uint8 raster of shape `(rows, cols)`.

    Returns
    -------
    (bytes, bytes)
    """

    header = make_image_header(raster.shape[0], raster.shape[1], **kwargs)
    return header, encode_bands(raster[:, :, numpy.newaxis])


def complex_image(data, iloc=(0, 0), idlvl=1, ialvl=0, order='IQ', imode='P'):
    """
    Make a 32-bit float complex image segment from the complex array of shape
    `(rows, cols)`.

    Returns
    -------
    (bytes, bytes)
    """

    rows, cols = data.shape
    bands = numpy.empty((rows, cols, 2), dtype='>f4')
    if order == 'IQ':
        bands[:, :, 0], bands[:, :, 1] = data.real, data.imag
    else:
        bands[:, :, 0], bands[:, :, 1] = data.imag, data.real
    header = make_image_header(
        rows, cols, irep='NODISPLY', pvtype='R', nbpp=32, isubcats=tuple(order), imode=imode,
        iloc=iloc, idlvl=idlvl, ialvl=ialvl)
    return header, encode_bands(bands, imode=imode)


# The scene center is on the equator at the prime meridian, and the sensor
# looks straight down, so that the slant, image and ground planes coincide.
IDENTITY_GEOMETRY = {
    'scp': (6378137.0, 0.0, 0.0),
    'row_uvect': (0.0, 1.0, 0.0),
    'col_uvect': (0.0, 0.0, 1.0),
    'arp_pos': (6378137.0, 1000.0, 0.0),
    'arp_vel': (0.0, 0.0, 7000.0),
    'side_of_track': 'L',
    'fpn': (1.0, 0.0, 0.0),
}


def _xyz(tag, value):
    return '<{0}><X>{1!r}</X><Y>{2!r}</Y><Z>{3!r}</Z></{0}>'.format(
        tag, float(value[0]), float(value[1]), float(value[2]))


def make_sicd_xml(
        num_rows, num_cols, scp_pixel=None, row_ss=1.0, col_ss=1.0,
        pixel_type='RE32F_IM32F', image_form_algo='PFA', amplitude_table=None,
        namespace='urn:SICD:1.2.1', omit=(), **geometry):
    """
    Make a minimal SICD XML string.

    Parameters
    ----------
    num_rows : int
    num_cols : int
    scp_pixel : None|Tuple[int, int]
        Defaults to the image center.
    row_ss : float
    col_ss : float
    pixel_type : str
    image_form_algo : str
    amplitude_table : None|numpy.ndarray
    namespace : None|str
    omit : Sequence[str]
        The top level elements to leave out.
    geometry
        Overrides for the entries of `IDENTITY_GEOMETRY`.

    Returns
    -------
    str
    """

    geom = dict(IDENTITY_GEOMETRY)
    geom.update(geometry)
    if scp_pixel is None:
        scp_pixel = (num_rows//2, num_cols//2)

    amp_table = ''
    if amplitude_table is not None:
        amp_table = '<AmpTable size="256">{}</AmpTable>'.format(
            ''.join('<Amplitude index="{}">{!r}</Amplitude>'.format(i, float(value))
                    for i, value in enumerate(amplitude_table)))

    sections = [
        ('ImageData',
         '<ImageData><PixelType>{}</PixelType>{}<NumRows>{}</NumRows><NumCols>{}</NumCols>'
         '<FirstRow>0</FirstRow><FirstCol>0</FirstCol>'
         '<FullImage><NumRows>{}</NumRows><NumCols>{}</NumCols></FullImage>'
         '<SCPPixel><Row>{}</Row><Col>{}</Col></SCPPixel></ImageData>'.format(
             pixel_type, amp_table, num_rows, num_cols, num_rows, num_cols, scp_pixel[0], scp_pixel[1])),
        ('GeoData', '<GeoData><SCP>{}</SCP></GeoData>'.format(_xyz('ECF', geom['scp']))),
        ('Grid',
         '<Grid><Row>{}<SS>{!r}</SS></Row><Col>{}<SS>{!r}</SS></Col></Grid>'.format(
             _xyz('UVectECF', geom['row_uvect']), float(row_ss),
             _xyz('UVectECF', geom['col_uvect']), float(col_ss))),
        ('SCPCOA',
         '<SCPCOA>{}{}<SideOfTrack>{}</SideOfTrack><GrazeAng>90.0</GrazeAng>'
         '<TwistAng>0.0</TwistAng></SCPCOA>'.format(
             _xyz('ARPPos', geom['arp_pos']), _xyz('ARPVel', geom['arp_vel']), geom['side_of_track'])),
        ('ImageFormation',
         '<ImageFormation><ImageFormAlgo>{}</ImageFormAlgo></ImageFormation>'.format(image_form_algo)),
        ('PFA', '<PFA>{}</PFA>'.format(_xyz('FPN', geom['fpn'])) if image_form_algo == 'PFA' else ''),
    ]
    body = ''.join(text for tag, text in sections if tag not in omit)
    if namespace is None:
        return '<?xml version="1.0" encoding="UTF-8"?><SICD>{}</SICD>'.format(body)
    return '<?xml version="1.0" encoding="UTF-8"?><SICD xmlns="{}">{}</SICD>'.format(namespace, body)


def sicd_data_extension(xml_string, subheader=True):
    """
    Make the SICD XML data extension, optionally without the SICD user defined
    subheader.

    Returns
    -------
    (bytes, bytes)
    """

    user_header = make_sicd_des_subheader() if subheader else b''
    return make_des_header(user_header=user_header), xml_string.encode('utf-8')


__all__ = [
    'unittest', 'encode_bands', 'make_image_header', 'make_sicd_des_subheader', 'make_des_header', 'build_nitf',
    'mono_image', 'complex_image', 'IDENTITY_GEOMETRY', 'make_sicd_xml', 'sicd_data_extension']
